"""
Auto Guard Level - Pick a concrete guard level from the run's surroundings

Resolution order (first hit wins):
- Git branch equal to a production branch -> paranoid
- Git branch containing a production keyword -> high
- Production keyword as a delimited token in the command -> high
- Deployment verb in the command -> high
- Production keyword as a delimited token in the working directory -> high
- Environment variable named like env/stage/tier with a production value -> high
- Otherwise -> medium
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from ..utils.logger import debug
from .escalation import ProductionEscalator
from .types import GuardLevel

DEFAULT_PRODUCTION_BRANCHES = ("main", "master", "production", "release")
DEPLOYMENT_VERBS = re.compile(r"\b(deploy|release|publish|ship)", re.IGNORECASE)
ENV_NAME_HINTS = ("env", "environment", "stage", "tier")


@dataclass(frozen=True)
class DetectionContext:
    """Inputs for auto-detection, captured once at invocation start"""

    command: str = ""
    working_dir: str = ""
    git_branch: str = ""
    environment: Mapping[str, str] = field(default_factory=dict)


def read_git_branch(start: Optional[Path] = None) -> str:
    """Current branch from .git/HEAD, walking up from start; '' if detached or absent"""
    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        head = directory / ".git" / "HEAD"
        if not head.is_file():
            continue
        try:
            content = head.read_text(encoding="utf-8").strip()
        except OSError:
            return ""
        prefix = "ref: refs/heads/"
        return content[len(prefix):] if content.startswith(prefix) else ""
    return ""


def detect_guard_level(
    branches: Sequence[str],
    keywords: Sequence[str],
    ctx: DetectionContext,
) -> GuardLevel:
    """Resolve an ``auto`` guard level to a concrete one"""
    branches = [b.lower() for b in (branches or DEFAULT_PRODUCTION_BRANCHES)]
    matcher = ProductionEscalator(keywords or None)

    branch = ctx.git_branch.strip().lower()
    if branch:
        if branch in branches:
            debug(f"auto guard level: production branch {branch!r} -> paranoid")
            return GuardLevel.PARANOID
        if any(k in branch for k in matcher.markers):
            debug(f"auto guard level: branch {branch!r} has production keyword -> high")
            return GuardLevel.HIGH

    if ctx.command:
        if matcher.find_marker(ctx.command):
            return GuardLevel.HIGH
        if DEPLOYMENT_VERBS.search(ctx.command):
            return GuardLevel.HIGH

    if ctx.working_dir and matcher.find_marker(ctx.working_dir):
        return GuardLevel.HIGH

    for name in sorted(ctx.environment):
        if not any(hint in name.lower() for hint in ENV_NAME_HINTS):
            continue
        if matcher.find_marker(ctx.environment[name] or ""):
            debug(f"auto guard level: {name} looks like production -> high")
            return GuardLevel.HIGH

    return GuardLevel.MEDIUM
