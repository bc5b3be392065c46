"""
Repeat-Abuse Detector - Sliding-window repetition check per session

Detects an agent retrying the same risky or destructive command until
it goes through. Window entries are derived from the session's command
log on every evaluation and never stored on their own.

Rules:
- Sensitive command or sensitive finding: warn/block on count alone
- Otherwise, risk >= high: warn at warn_threshold, block at block_threshold
- Otherwise: repetition alone never fires
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Sequence

from .severity import has_code
from .types import RepeatDecision, RepeatWindowEntry, Severity

REPEAT_SENSITIVE_COMMANDS = frozenset(
    {"rm", "mv", "cp", "chmod", "chown", "dd", "mkfs", "shred", "truncate"}
)

REPEAT_SENSITIVE_CODES = frozenset(
    {
        "DANGEROUS_DELETE_ROOT",
        "DANGEROUS_DELETE_HOME",
        "PROTECTED_DIRECTORY_ACCESS",
        "FORK_BOMB",
        "SENSITIVE_ENV_ACCESS",
        "DOTENV_FILE_READ",
        "PRIVATE_KEY_ACCESS",
        "DISK_WIPE",
    }
)


@dataclass(frozen=True)
class RepeatPolicy:
    """Thresholds for repeat protection"""

    window_seconds: float = 30.0
    warn_threshold: int = 3
    block_threshold: int = 4
    sensitive_block_threshold: int = 4

    def __post_init__(self):
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {self.window_seconds}")
        for name in ("warn_threshold", "block_threshold", "sensitive_block_threshold"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")


def normalize_command(command: str, args: Sequence[str] = ()) -> str:
    """Join command and args into the repeat key"""
    return f"{command} {' '.join(args)}".strip()


def is_repeat_sensitive_command(command: str) -> bool:
    """Delete/overwrite-class binaries, matched on basename (mkfs.ext4 -> mkfs)"""
    name = os.path.basename(command.strip())
    if name in REPEAT_SENSITIVE_COMMANDS:
        return True
    return name.split(".", 1)[0] == "mkfs"


def window_entries(history: Iterable[Any]) -> List[RepeatWindowEntry]:
    """Derive window entries from session command records.

    Records need ``timestamp``, ``command``, ``args``, ``risk_level`` and
    ``findings`` attributes. Order is preserved.
    """
    entries = []
    for record in history:
        codes = tuple(getattr(record, "findings", ()) or ())
        entries.append(
            RepeatWindowEntry(
                timestamp=record.timestamp,
                normalized_command=normalize_command(record.command, record.args or ()),
                risk_level=Severity.parse(record.risk_level or Severity.LOW),
                sensitive=(
                    is_repeat_sensitive_command(record.command)
                    or has_code(codes, REPEAT_SENSITIVE_CODES)
                ),
                codes=codes,
            )
        )
    return entries


class RepeatAbuseDetector:
    """Counts identical commands inside a trailing time window"""

    def __init__(self, policy: Optional[RepeatPolicy] = None):
        self.policy = policy or RepeatPolicy()

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.policy.window_seconds)

    def count_recent(
        self, entries: Sequence[RepeatWindowEntry], key: str, now: datetime
    ) -> int:
        """Count prior entries matching key within [now - window, now].

        Scans backward from the newest entry and stops at the first one
        older than the window start; entries stamped after ``now`` are
        skipped.
        """
        start = now - self.window
        prior = 0
        for entry in reversed(entries):
            if entry.timestamp > now:
                continue
            if entry.timestamp < start:
                break
            if entry.normalized_command == key:
                prior += 1
        return prior

    def evaluate(
        self,
        history: Iterable[Any],
        command: str,
        args: Sequence[str],
        risk: Severity,
        codes: Iterable[str],
        now: datetime,
    ) -> RepeatDecision:
        """Decide warn/block for the current attempt given session history"""
        key = normalize_command(command, args)
        sensitive = is_repeat_sensitive_command(command) or has_code(
            codes, REPEAT_SENSITIVE_CODES
        )
        count = self.count_recent(window_entries(history), key, now) + 1
        policy = self.policy

        if sensitive:
            limit = policy.sensitive_block_threshold
            warn = count >= policy.warn_threshold
            block = count >= limit
        elif risk >= Severity.HIGH:
            limit = policy.block_threshold
            warn = count >= policy.warn_threshold
            block = count >= limit
        else:
            limit = 0
            warn = block = False

        return RepeatDecision(
            block=block,
            warn=warn,
            count=count,
            limit=limit,
            window_seconds=policy.window_seconds,
            key=key,
            sensitive=sensitive,
        )
