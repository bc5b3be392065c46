"""
Production-Context Escalator - Raise risk for destructive commands aimed at prod

A marker (prod, production, staging, ...) only counts as a delimited
token, so ``--env=prod`` and ``deploy-prod`` match while ``product`` and
``reproduce`` do not. Escalation needs a marker and an independent
destructive signal, raises risk by exactly one step, and caps at
critical.
"""

import re
from typing import Iterable, List, Optional, Pattern, Sequence

from .severity import has_code
from .types import Severity

DEFAULT_PRODUCTION_MARKERS = ("prod", "production", "prd", "live", "staging", "stg")

DESTRUCTIVE_CODES = frozenset(
    {
        "RISKY_GIT_OPERATION",
        "DATABASE_OPERATION",
        "DESTRUCTIVE_INFRA",
        "DESTRUCTIVE_K8S_OP",
        "DESTRUCTIVE_CLOUD_STORAGE",
        "DESTRUCTIVE_CONTAINER_OP",
        "DANGEROUS_DELETE_ROOT",
        "DANGEROUS_DELETE_HOME",
        "DISK_WIPE",
    }
)

DESTRUCTIVE_TEXT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bgit\s+push\b.*(--force\b|--force-with-lease\b|\s-f\b|\s\+\S)", re.I),
    re.compile(r"\bgit\s+reset\s+--hard\b", re.I),
    re.compile(r"\b(DROP|TRUNCATE)\s+(DATABASE|TABLE|SCHEMA)\b", re.I),
    re.compile(r"\bDELETE\s+FROM\s+\w+\s*(;|$)", re.I),
    re.compile(r"\bterraform\s+(destroy|apply\s+.*-destroy)\b", re.I),
    re.compile(r"\bkubectl\s+delete\b", re.I),
    re.compile(r"\bhelm\s+(uninstall|delete)\b", re.I),
]

# Characters that may sit on either side of a marker
_DELIMS = r"\s/\-_.@=:"


def _marker_regex(marker: str) -> Pattern[str]:
    return re.compile(
        rf"(?:^|[{_DELIMS}]){re.escape(marker)}(?=$|[{_DELIMS}])", re.IGNORECASE
    )


class ProductionEscalator:
    """Raises risk one step when a destructive command targets production"""

    def __init__(self, markers: Optional[Sequence[str]] = None):
        names = markers if markers is not None else DEFAULT_PRODUCTION_MARKERS
        self.markers = tuple(m.strip().lower() for m in names if m and m.strip())
        self._patterns = [(m, _marker_regex(m)) for m in self.markers]

    def find_marker(self, text: str) -> Optional[str]:
        """First marker present in text as a delimited token"""
        for marker, pattern in self._patterns:
            if pattern.search(text):
                return marker
        return None

    @staticmethod
    def has_destructive_signal(text: str, codes: Iterable[str] = ()) -> bool:
        if has_code(codes, DESTRUCTIVE_CODES):
            return True
        return any(p.search(text) for p in DESTRUCTIVE_TEXT_PATTERNS)

    def escalate(self, text: str, risk: Severity, codes: Iterable[str] = ()) -> Severity:
        """Return risk raised one step if text is destructive and production-bound"""
        if self.find_marker(text) is None:
            return risk
        if not self.has_destructive_signal(text, codes):
            return risk
        return risk.step_up()
