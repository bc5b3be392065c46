"""Command pattern domain model.

One validated regex per risk class, producing a Finding when it matches.
"""

import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Pattern

from ..guard.types import Finding, Severity


@dataclass
class CommandPattern:
    """A detection pattern for one finding code.

    ``category`` lets policy switches turn groups off (``git`` is skipped
    when git monitoring is disabled).
    """

    code: str
    severity: Severity
    regex: str
    description: str
    recommendation: str = ""
    category: str = "general"
    ignore_case: bool = True
    _compiled: Optional[Pattern[str]] = field(default=None, init=False, repr=False)

    CODE_RE: ClassVar[Pattern[str]] = re.compile(r"^[A-Z][A-Z0-9_]*$")

    def __post_init__(self):
        """Validate pattern after initialization."""
        if not self.CODE_RE.match(self.code):
            raise ValueError(f"Finding code must be UPPER_SNAKE_CASE, got '{self.code}'")
        try:
            self.severity = Severity.parse(self.severity)
        except ValueError as e:
            raise ValueError(f"Pattern {self.code}: {e}") from None
        try:
            self._compiled = re.compile(self.regex, re.IGNORECASE if self.ignore_case else 0)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{self.regex}': {e}")

    def matches(self, line: str) -> bool:
        """Check if pattern matches the line."""
        return bool(self._compiled.search(line))

    def to_finding(self, line_number: int = 0) -> Finding:
        return Finding(
            code=self.code,
            severity=self.severity,
            description=self.description,
            recommendation=self.recommendation,
            line=line_number,
        )
