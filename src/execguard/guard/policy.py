"""
Guard Level Policy - What each strictness tier surfaces and gates

Both tables are pure lookups. Approval sets grow strictly from
off to paranoid; low-severity findings only surface under paranoid.
"""

from typing import Dict, FrozenSet, List, Sequence

from .types import Finding, GuardLevel, Severity

_ALL = frozenset(Severity)

# Severities surfaced as active findings per level
_ACTIVE: Dict[GuardLevel, FrozenSet[Severity]] = {
    GuardLevel.OFF: frozenset(),
    GuardLevel.LOW: frozenset({Severity.CRITICAL}),
    GuardLevel.MEDIUM: frozenset({Severity.CRITICAL, Severity.HIGH}),
    GuardLevel.HIGH: frozenset({Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM}),
    GuardLevel.PARANOID: _ALL,
}

# Risk levels that require approval per level
_APPROVAL: Dict[GuardLevel, FrozenSet[Severity]] = {
    GuardLevel.OFF: frozenset(),
    GuardLevel.LOW: frozenset({Severity.CRITICAL}),
    GuardLevel.MEDIUM: frozenset({Severity.CRITICAL, Severity.HIGH}),
    GuardLevel.HIGH: frozenset({Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM}),
    GuardLevel.PARANOID: _ALL,
}


def active_findings(findings: Sequence[Finding], level: GuardLevel) -> List[Finding]:
    """Findings the given guard level surfaces to the operator"""
    allowed = _ACTIVE[level]
    return [f for f in findings if f.severity in allowed]


def requires_approval(risk: Severity, level: GuardLevel) -> bool:
    """Whether a command at this risk needs approval under the given level"""
    return risk in _APPROVAL[level]
