"""
Critical-Command Gate - Sandbox-or-block for catastrophic operations

The code set is fixed and versioned. Membership is exact: no prefix
or substring matching, so a renamed or new classifier code never
silently joins or leaves the gate.
"""

from typing import FrozenSet, Iterable, List

CRITICAL_GATE_VERSION = 1

CRITICAL_GATE_CODES: FrozenSet[str] = frozenset(
    {
        "DANGEROUS_DELETE_ROOT",
        "DANGEROUS_DELETE_HOME",
        "PROTECTED_DIRECTORY_ACCESS",
        "FORK_BOMB",
        "SENSITIVE_ENV_ACCESS",
        "DOTENV_FILE_READ",
    }
)


def gate_codes(codes: Iterable[str]) -> List[str]:
    """Codes that belong to the gate, in input order"""
    matched: List[str] = []
    for code in codes:
        if code in CRITICAL_GATE_CODES and code not in matched:
            matched.append(code)
    return matched


def requires_sandbox(codes: Iterable[str]) -> bool:
    """True if any code is a critical-gate code"""
    return any(code in CRITICAL_GATE_CODES for code in codes)
