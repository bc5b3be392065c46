"""
Decision Report - Operator-facing text for blocks and approval prompts

Every block or approval prompt lists the triggering findings (code,
severity, description, recommendation) and how to override.
"""

from typing import List

from .orchestrator import (
    BLOCK_CRITICAL,
    BLOCK_EXTERNAL_HTTP,
    BLOCK_REPEAT,
    BLOCK_SUDO,
    BLOCK_USER_DENIED,
    Evaluation,
)
from .restrictions import ALLOW_NET_ENV, ALLOW_SUDO_ENV
from .types import Action


def format_findings(evaluation: Evaluation) -> List[str]:
    """One block of lines per triggering finding"""
    wanted = set(evaluation.decision.triggered_codes)
    lines: List[str] = []
    reported = set()
    for f in evaluation.findings:
        if wanted and f.code not in wanted:
            continue
        if f.code in reported:
            continue
        reported.add(f.code)
        lines.append(f"  [{f.severity.value.upper()}] {f.code}: {f.description}")
        if f.recommendation:
            lines.append(f"      -> {f.recommendation}")
    return lines


def override_instructions(evaluation: Evaluation, bypass_env_var: str) -> List[str]:
    reason = evaluation.block_reason
    if reason == BLOCK_CRITICAL:
        return [
            "This command can only run inside a sandbox and none is available.",
            "Install bubblewrap, docker or podman and enable the sandbox to proceed.",
        ]
    if reason == BLOCK_REPEAT:
        return [
            f"Wait {evaluation.repeat.window_seconds:g}s before retrying, "
            "or review why the command keeps being repeated."
        ]
    if reason == BLOCK_SUDO:
        return [f"Run sudo outside execguard, or set {ALLOW_SUDO_ENV}=1 to allow it here."]
    if reason == BLOCK_EXTERNAL_HTTP:
        return [f"Set {ALLOW_NET_ENV}=1 to allow external http(s) endpoints."]
    if reason == BLOCK_USER_DENIED:
        return []
    if evaluation.gate_codes:
        return ["Re-run with --interactive to approve this sandboxed command."]
    return [
        "Re-run with --interactive to approve it yourself, or",
        f"set {bypass_env_var} to a personal override phrase (10+ characters).",
    ]


def format_decision(evaluation: Evaluation, bypass_env_var: str) -> str:
    """Full report for a block or approval prompt; empty for allow/warn"""
    decision = evaluation.decision
    if decision.action == Action.BLOCK:
        header = f"BLOCKED ({decision.risk_level.value} risk): {evaluation.normalized}"
    elif decision.action == Action.REQUIRE_APPROVAL:
        header = f"Approval required ({decision.risk_level.value} risk): {evaluation.normalized}"
    else:
        return ""

    lines = [header]
    lines.extend(format_findings(evaluation))
    for reason in decision.reasons:
        lines.append(f"  - {reason}")
    if decision.action == Action.BLOCK:
        instructions = override_instructions(evaluation, bypass_env_var)
        if instructions:
            lines.append("")
            lines.extend(instructions)
    return "\n".join(lines)


def format_warning(evaluation: Evaluation) -> str:
    """Short notice for commands that run with a warning"""
    if evaluation.decision.action != Action.WARN:
        return ""
    reasons = "; ".join(evaluation.decision.reasons) or "repeated command"
    return f"warning: {evaluation.normalized} ({reasons})"
