"""
Bypass Authenticator - Validate operator override credentials

Rejects short values and values containing tokens an automated caller
is likely to reach for.
"""

from typing import Mapping, Optional

MIN_BYPASS_LENGTH = 10

BYPASS_DENYLIST = (
    "bypass",
    "agent",
    "ai",
    "automated",
    "script",
    "cursor",
    "copilot",
    "gpt",
    "claude",
    "true",
    "yes",
    "1",
    "enabled",
)


def is_valid_bypass(value: Optional[str]) -> bool:
    """Check a bypass value against length and denylist rules"""
    if value is None or len(value) < MIN_BYPASS_LENGTH:
        return False
    lowered = value.lower()
    return not any(token in lowered for token in BYPASS_DENYLIST)


def read_bypass_value(env: Mapping[str, str], var_name: str) -> Optional[str]:
    """Read the bypass variable once; empty counts as unset"""
    value = env.get(var_name)
    return value if value else None
