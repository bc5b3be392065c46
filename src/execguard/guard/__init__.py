"""
Execution Guard - Decision engine for guarded shell commands

Provides the decision primitives (severity model, guard-level policy,
bypass check, repeat detection, critical gate, production escalation).
The orchestrator lives in ``execguard.guard.orchestrator``.
"""

from .types import (
    Action,
    Decision,
    ExecutionTarget,
    Finding,
    GuardLevel,
    GuardState,
    RepeatDecision,
    RiskLevel,
    Severity,
)
from .severity import finding_codes, has_code, reduce
from .policy import active_findings, requires_approval
from .bypass import is_valid_bypass, read_bypass_value
from .critical import CRITICAL_GATE_CODES, CRITICAL_GATE_VERSION, gate_codes, requires_sandbox
from .repeat import RepeatAbuseDetector, RepeatPolicy, normalize_command
from .escalation import ProductionEscalator

__all__ = [
    "Action",
    "Decision",
    "ExecutionTarget",
    "Finding",
    "GuardLevel",
    "GuardState",
    "RepeatDecision",
    "RiskLevel",
    "Severity",
    "finding_codes",
    "has_code",
    "reduce",
    "active_findings",
    "requires_approval",
    "is_valid_bypass",
    "read_bypass_value",
    "CRITICAL_GATE_CODES",
    "CRITICAL_GATE_VERSION",
    "gate_codes",
    "requires_sandbox",
    "RepeatAbuseDetector",
    "RepeatPolicy",
    "normalize_command",
    "ProductionEscalator",
]
