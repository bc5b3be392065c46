"""
Guard Types - Common types for the execution guard

Provides:
- Severity: Totally ordered risk scale (low < medium < high < critical)
- GuardLevel: Configured strictness tier
- Finding: One classifier observation
- Action / GuardState / ExecutionTarget: Decision vocabulary
- Decision: The engine's immutable verdict for one command
- RepeatDecision: Output of the repeat-abuse detector
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Tuple


class Severity(Enum):
    """Risk severity, ordered low < medium < high < critical"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Parse a severity name, case-insensitive"""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown severity: {value!r}") from None

    def step_up(self) -> "Severity":
        """Next severity up, capped at critical"""
        return _SEVERITY_ORDER[min(self.rank + 1, len(_SEVERITY_ORDER) - 1)]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)
_SEVERITY_RANK = {level: i for i, level in enumerate(_SEVERITY_ORDER)}

# A set of findings reduces to a RiskLevel; same scale
RiskLevel = Severity


class GuardLevel(Enum):
    """Operator-configured strictness tier"""

    OFF = "off"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    PARANOID = "paranoid"

    @classmethod
    def parse(cls, value: "str | GuardLevel") -> "GuardLevel":
        if isinstance(value, GuardLevel):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown guard level: {value!r}") from None


class Action(Enum):
    """What the guard decided to do with a command"""

    ALLOW = "allow"
    WARN = "warn"
    REQUIRE_APPROVAL = "requireApproval"
    BLOCK = "block"


class GuardState(Enum):
    """Orchestrator states for one candidate command"""

    PENDING = "pending"
    ANALYZED = "analyzed"
    ALLOWED = "allowed"
    WARNED = "warned"
    AWAITING_APPROVAL = "awaiting_approval"
    BLOCKED = "blocked"
    EXECUTED = "executed"
    DENIED = "denied"


class ExecutionTarget(Enum):
    """Where an allowed command runs"""

    HOST = "host"
    SANDBOX = "sandbox"
    NONE = "none"


@dataclass(frozen=True)
class Finding:
    """One static-analysis observation produced by a classifier"""

    code: str
    severity: Severity
    description: str = ""
    recommendation: str = ""
    line: int = 0

    def __post_init__(self):
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity.parse(self.severity))


@dataclass(frozen=True)
class Decision:
    """The engine's verdict for one command; never mutated after creation"""

    action: Action
    risk_level: Severity
    triggered_codes: Tuple[str, ...] = ()
    reasons: Tuple[str, ...] = ()

    @property
    def is_blocked(self) -> bool:
        return self.action == Action.BLOCK

    @property
    def may_execute(self) -> bool:
        return self.action in (Action.ALLOW, Action.WARN)

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "risk_level": self.risk_level.value,
            "triggered_codes": list(self.triggered_codes),
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class RepeatDecision:
    """Result of repeat-abuse evaluation for one command"""

    block: bool = False
    warn: bool = False
    count: int = 0
    limit: int = 0
    window_seconds: float = 0.0
    key: str = ""
    sensitive: bool = False


@dataclass(frozen=True)
class RepeatWindowEntry:
    """A history command as seen by the repeat detector (derived, not stored)"""

    timestamp: datetime
    normalized_command: str
    risk_level: Severity
    sensitive: bool = False
    codes: Tuple[str, ...] = field(default_factory=tuple)
