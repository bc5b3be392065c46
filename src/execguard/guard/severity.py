"""
Severity Model - Reduce findings to a single risk level

Provides:
- reduce: Maximum severity of a finding set (low when empty)
- has_code: Whether any finding code belongs to a code set
- finding_codes: Ordered, deduplicated codes of a finding set
"""

from typing import Iterable, List, Union

from .types import Finding, Severity

CodeSource = Iterable[Union[Finding, str]]


def reduce(findings: Iterable[Finding]) -> Severity:
    """Return the highest severity present, or low for no findings"""
    risk = Severity.LOW
    for finding in findings:
        if finding.severity > risk:
            risk = finding.severity
    return risk


def _code_of(item: Union[Finding, str]) -> str:
    return item.code if isinstance(item, Finding) else item


def has_code(items: CodeSource, code_set: Iterable[str]) -> bool:
    """Check if any finding (or bare code) is a member of code_set"""
    wanted = code_set if isinstance(code_set, (set, frozenset)) else set(code_set)
    return any(_code_of(item) in wanted for item in items)


def finding_codes(findings: CodeSource) -> List[str]:
    """Codes in first-seen order, without duplicates"""
    seen: List[str] = []
    for item in findings:
        code = _code_of(item)
        if code not in seen:
            seen.append(code)
    return seen
