"""
Session Models - Audit records owned by the session store

Provides:
- Session: One agent session bound to a workspace
- Command: One audited command (append-only)
- SessionSummary: Aggregates for audit/reporting
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

RISK_WEIGHTS = {"critical": 100, "high": 50, "medium": 10, "low": 0}


@dataclass
class Session:
    """An agent session"""

    id: str
    workspace: str
    agent: str = ""
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workspace": self.workspace,
            "agent": self.agent,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "active": self.is_active,
        }


@dataclass
class Command:
    """Audit record for one guarded command.

    ``id`` identifies the record across retried writes; appending the same
    record twice stores it once.
    """

    timestamp: datetime
    command: str
    args: List[str] = field(default_factory=list)
    exit_code: Optional[int] = None
    duration_ms: int = 0
    risk_level: str = "low"
    approved: bool = False
    findings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def blocked(self) -> bool:
        return bool(self.metadata.get("blocked"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "command": self.command,
            "args": list(self.args),
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "risk_level": self.risk_level,
            "approved": self.approved,
            "findings": list(self.findings),
            "metadata": dict(self.metadata),
        }


@dataclass
class SessionSummary:
    """Per-session aggregates"""

    session_id: str
    total_commands: int = 0
    blocked_commands: int = 0
    violations: int = 0
    risk_score: int = 0
    by_risk: Dict[str, int] = field(
        default_factory=lambda: {"low": 0, "medium": 0, "high": 0, "critical": 0}
    )

    @classmethod
    def from_commands(cls, session_id: str, commands: List[Command]) -> "SessionSummary":
        summary = cls(session_id=session_id)
        for cmd in commands:
            level = cmd.risk_level if cmd.risk_level in RISK_WEIGHTS else "low"
            summary.total_commands += 1
            summary.by_risk[level] += 1
            summary.risk_score += RISK_WEIGHTS[level]
            if level in ("critical", "high"):
                summary.violations += 1
            if cmd.blocked:
                summary.blocked_commands += 1
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_commands": self.total_commands,
            "blocked_commands": self.blocked_commands,
            "violations": self.violations,
            "risk_score": self.risk_score,
            "by_risk": dict(self.by_risk),
        }
