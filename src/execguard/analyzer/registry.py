"""Pattern registry for loading extra command patterns from YAML.

File format::

    patterns:
      - code: INTERNAL_DEPLOY
        severity: high
        regex: "\\bdeployctl\\s+rollout\\b"
        description: Internal rollout tool
        recommendation: Use the release checklist
"""

from pathlib import Path
from typing import List, Optional

import yaml

from ..errors import ConfigError
from ..config import PolicyConfig
from ..utils.logger import debug
from .command import CommandAnalyzer
from .pattern import CommandPattern


class PatternRegistry:
    """Manages custom command patterns loaded from YAML configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path).expanduser() if config_path else None
        self.patterns: List[CommandPattern] = []

        if self.config_path is not None:
            if not self.config_path.exists():
                raise ConfigError(f"Custom patterns file not found: {self.config_path}")
            self.load()

    def load(self) -> None:
        """Load patterns from YAML configuration."""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        entries = data.get("patterns", []) if isinstance(data, dict) else []
        patterns = []
        for i, p in enumerate(entries):
            try:
                patterns.append(
                    CommandPattern(
                        code=p["code"],
                        severity=p.get("severity", "medium"),
                        regex=p["regex"],
                        description=p.get("description", p["code"]),
                        recommendation=p.get("recommendation", ""),
                        category=p.get("category", "general"),
                        ignore_case=p.get("ignore_case", True),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"Invalid pattern #{i + 1} in {self.config_path}: {e}") from e
        self.patterns = patterns
        debug(f"Loaded {len(patterns)} custom patterns from {self.config_path}")


def build_analyzer(policy: PolicyConfig) -> CommandAnalyzer:
    """Default analyzer plus any custom patterns the policy names"""
    analyzer = CommandAnalyzer()
    if policy.custom_patterns_file:
        analyzer.extend(PatternRegistry(Path(policy.custom_patterns_file)).patterns)
    return analyzer
