"""
Command Analyzer - Pattern-based classifier for command text and scripts

Provides:
- Classifier: Protocol every classifier plugged into the guard implements
- CommandAnalyzer: Default classifier driven by a CommandPattern table
- analyze_command: Convenience wrapper for one command line
"""

import os
from typing import Iterable, List, Optional, Protocol, Sequence, Set

from ..config import PolicyConfig
from ..guard.types import Finding, Severity
from .pattern import CommandPattern
from .patterns import DEFAULT_PATTERNS


class Classifier(Protocol):
    """Produces findings for a command line or script body"""

    def analyze(self, path: str, content: str, policy: PolicyConfig) -> List[Finding]:
        ...


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(n and n.lower() in lowered for n in needles)


class CommandAnalyzer:
    """Scans text line by line against a pattern table.

    Blank lines and ``#`` comments are skipped, allowlisted lines produce
    no findings, and each finding code is reported at most once per line.
    """

    def __init__(self, patterns: Optional[Sequence[CommandPattern]] = None):
        self.patterns: List[CommandPattern] = list(
            DEFAULT_PATTERNS if patterns is None else patterns
        )

    def extend(self, patterns: Iterable[CommandPattern]) -> None:
        self.patterns.extend(patterns)

    def analyze_line(self, line: str, line_number: int, policy: PolicyConfig) -> List[Finding]:
        findings: List[Finding] = []
        seen: Set[str] = set()
        for pattern in self.patterns:
            if pattern.code in seen:
                continue
            if pattern.category == "git" and not policy.monitor_git_ops:
                continue
            if pattern.matches(line):
                seen.add(pattern.code)
                findings.append(pattern.to_finding(line_number))

        if policy.denylist and _contains_any(line, policy.denylist):
            # A critical finding on the line already covers it
            if not any(f.severity == Severity.CRITICAL for f in findings):
                findings.append(
                    Finding(
                        code="POLICY_DENYLIST",
                        severity=Severity.HIGH,
                        description="Command matches a denylisted pattern",
                        recommendation="Remove or justify this command, or update allowlist with review.",
                        line=line_number,
                    )
                )
        return findings

    def analyze(self, path: str, content: str, policy: Optional[PolicyConfig] = None) -> List[Finding]:
        """Analyze text and return findings ordered by line"""
        policy = policy or PolicyConfig()
        findings: List[Finding] = []
        for number, raw in enumerate(content.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if policy.allowlist and _contains_any(line, policy.allowlist):
                continue
            findings.extend(self.analyze_line(line, number, policy))

        ext = os.path.splitext(path or "")[1].lower()
        if ext and ext != ".sh":
            findings.append(
                Finding(
                    code="NON_STANDARD_EXTENSION",
                    severity=Severity.LOW,
                    description="Script does not use .sh extension",
                    recommendation="Use a .sh extension to make shell scripts explicit.",
                )
            )
        return findings


def analyze_command(command: str, policy: Optional[PolicyConfig] = None) -> List[Finding]:
    """Analyze a single command line"""
    return CommandAnalyzer().analyze("", command, policy)
