"""
Execution Orchestrator - One decision per command, then dispatch and audit

States: PENDING -> ANALYZED -> {ALLOWED, WARNED, AWAITING_APPROVAL, BLOCKED}
        -> {EXECUTED, DENIED}

Evaluation order:
1. classify, 2. reduce + production escalation, 3. critical gate,
4. repeat protection, 4a. external http(s) block, 5. guard level off,
5a. sudo block, 6. guard-level approval,
7. trust store / bypass / interactive approval, 8. dispatch, 9. audit.

``evaluate`` has no side effects beyond logging. Interactive approval is
a separate ``resolve_approval`` call, so non-interactive callers never
suspend.
"""

import os
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from ..config import GuardConfig
from ..errors import ApprovalRequiredError
from ..session.models import Command
from ..utils.logger import debug, error, info, log_context, warning
from .autolevel import DetectionContext, detect_guard_level, read_git_branch
from .bypass import is_valid_bypass, read_bypass_value
from .critical import CRITICAL_GATE_VERSION, gate_codes
from .escalation import ProductionEscalator
from .policy import active_findings, requires_approval
from .repeat import RepeatAbuseDetector, normalize_command
from .restrictions import ALLOW_NET_ENV, ALLOW_SUDO_ENV, external_urls, is_sudo, read_opt_in
from .severity import finding_codes, reduce
from .types import (
    Action,
    Decision,
    ExecutionTarget,
    Finding,
    GuardLevel,
    GuardState,
    RepeatDecision,
    Severity,
)

POLICY_EXIT_CODE = 3
AUDIT_SOURCE = "execguard"

BLOCK_CRITICAL = "critical_command"
BLOCK_REPEAT = "repeat_protection"
BLOCK_GUARD_LEVEL = "guard_level_block"
BLOCK_USER_DENIED = "user_denied"
BLOCK_SUDO = "sudo_blocked"
BLOCK_EXTERNAL_HTTP = "external_http_blocked"


class Approval(Enum):
    """Operator answer at the approval prompt"""

    APPROVE = "approve"
    REMEMBER = "remember"
    DENY = "deny"


Approver = Callable[["Evaluation"], Approval]


@dataclass(frozen=True)
class GuardContext:
    """Everything read from the environment, captured once per invocation"""

    config: GuardConfig
    level: GuardLevel
    bypass_value: Optional[str] = None
    sandbox_available: bool = False
    interactive: bool = False
    allow_sudo: bool = False
    allow_net: bool = False
    now: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not isinstance(self.level, GuardLevel):
            object.__setattr__(self, "level", GuardLevel.parse(self.level))

    @property
    def bypass_env_var(self) -> str:
        return self.config.guard_level.bypass_env_var

    @classmethod
    def from_environment(
        cls,
        config: GuardConfig,
        command_text: str = "",
        interactive: bool = False,
        sandbox_available: bool = False,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "GuardContext":
        """Resolve guard level and read the override variables exactly once"""
        env = dict(os.environ if env is None else env)
        cwd = cwd or os.getcwd()
        level_name = str(config.guard_level.level).lower()
        if level_name == "auto":
            detection = DetectionContext(
                command=command_text,
                working_dir=cwd,
                git_branch=read_git_branch(Path(cwd)),
                environment=env,
            )
            level = detect_guard_level(
                config.production_indicators.branches,
                config.production_indicators.keywords,
                detection,
            )
            debug(f"guard level auto -> {level.value}")
        else:
            level = GuardLevel.parse(level_name)

        return cls(
            config=config,
            level=level,
            bypass_value=read_bypass_value(env, config.guard_level.bypass_env_var),
            sandbox_available=sandbox_available,
            interactive=interactive,
            allow_sudo=read_opt_in(env, ALLOW_SUDO_ENV),
            allow_net=read_opt_in(env, ALLOW_NET_ENV),
            now=now or datetime.now(),
        )


@dataclass(frozen=True)
class Evaluation:
    """Outcome of steps 1-7 for one command"""

    command: str
    args: Tuple[str, ...]
    decision: Decision
    state: GuardState
    guard_level: GuardLevel
    findings: Tuple[Finding, ...] = ()
    base_risk: Severity = Severity.LOW
    production_marker: Optional[str] = None
    gate_codes: Tuple[str, ...] = ()
    repeat: RepeatDecision = field(default_factory=RepeatDecision)
    target: ExecutionTarget = ExecutionTarget.NONE
    block_reason: Optional[str] = None
    approval: str = "not_required"
    bypass_used: bool = False
    trusted: bool = False
    degraded: Tuple[str, ...] = ()

    @property
    def normalized(self) -> str:
        return normalize_command(self.command, self.args)

    @property
    def risk(self) -> Severity:
        return self.decision.risk_level

    @property
    def awaiting_approval(self) -> bool:
        return self.state == GuardState.AWAITING_APPROVAL


@dataclass(frozen=True)
class RunResult:
    """Terminal state of one guarded command"""

    evaluation: Evaluation
    state: GuardState
    exit_code: int
    duration_ms: int = 0
    record: Optional[Command] = None

    @property
    def decision(self) -> Decision:
        return self.evaluation.decision


class ExecutionGuard:
    """Sequences classification, policy and dispatch for guarded commands.

    Collaborators:
        classifiers: objects with ``analyze(path, content, policy)``
        store: session store with ``load_history`` and ``append_command``
        host_runner / sandbox_runner: objects with ``run(command, args) -> int``
        trust_store: optional remembered approvals
    """

    def __init__(
        self,
        classifiers: Sequence[object],
        store: Optional[object] = None,
        host_runner: Optional[object] = None,
        sandbox_runner: Optional[object] = None,
        trust_store: Optional[object] = None,
    ):
        self.classifiers = list(classifiers)
        self.store = store
        self.host_runner = host_runner
        self.sandbox_runner = sandbox_runner
        self.trust_store = trust_store

    # === Steps 1-2 ===

    def _classify(self, text: str, ctx: GuardContext) -> Tuple[List[Finding], List[str]]:
        findings: List[Finding] = []
        degraded: List[str] = []
        for classifier in self.classifiers:
            name = type(classifier).__name__
            try:
                findings.extend(classifier.analyze("", text, ctx.config.policies))
            except Exception as e:
                # Degrade, never block
                warning(f"Classifier {name} failed, continuing without it: {e}")
                degraded.append(f"classifier {name} unavailable: {e}")
        return findings, degraded

    def _load_history(self, session_id: Optional[str]) -> Tuple[list, Optional[str]]:
        if not session_id or self.store is None:
            return [], None
        try:
            return list(self.store.load_history(session_id)), None
        except Exception as e:
            warning(f"Could not load history for {session_id}: {e}")
            return [], f"session history unavailable: {e}"

    # === Steps 1-7 ===

    def evaluate(
        self,
        command: str,
        args: Sequence[str],
        session_id: Optional[str],
        ctx: GuardContext,
    ) -> Evaluation:
        """Decide what to do with a command without running it"""
        args = tuple(args)
        text = normalize_command(command, args)
        config = ctx.config

        with log_context(session_id=session_id, new_eval=True):
            findings, degraded = self._classify(text, ctx)
            codes = finding_codes(findings)
            base_risk = reduce(findings)

            escalator = ProductionEscalator(config.policies.prod_env_patterns)
            risk = base_risk
            marker = None
            if config.policies.detect_prod_env:
                risk = escalator.escalate(text, base_risk, codes)
                if risk != base_risk:
                    marker = escalator.find_marker(text)

            reasons: List[str] = list(degraded)
            if marker:
                reasons.append(
                    f"production context '{marker}' raised risk {base_risk.value} -> {risk.value}"
                )
            for f in findings:
                if f.severity >= Severity.MEDIUM:
                    warning(f"[{f.severity.value}] {f.code}: {f.description}")

            base = dict(
                command=command,
                args=args,
                guard_level=ctx.level,
                findings=tuple(findings),
                base_risk=base_risk,
                production_marker=marker,
                degraded=tuple(degraded),
            )

            # Step 3: critical gate
            gated = tuple(gate_codes(codes))
            if gated and not ctx.sandbox_available:
                reasons.append(
                    f"critical command requires a sandbox ({', '.join(gated)}); "
                    f"none available (gate v{CRITICAL_GATE_VERSION})"
                )
                error(f"Blocked critical command: {text}")
                return Evaluation(
                    **base,
                    decision=Decision(Action.BLOCK, risk, gated, tuple(reasons)),
                    state=GuardState.BLOCKED,
                    gate_codes=gated,
                    target=ExecutionTarget.NONE,
                    block_reason=BLOCK_CRITICAL,
                )
            if gated:
                reasons.append(f"critical command forced into sandbox ({', '.join(gated)})")

            # Step 4: repeat protection
            history, history_note = self._load_history(session_id)
            if history_note:
                reasons.append(history_note)
            detector = RepeatAbuseDetector(config.repeat)
            repeat = detector.evaluate(history, command, args, risk, codes, ctx.now)
            if repeat.block:
                reasons.append(
                    f"repeated {repeat.count} times within {repeat.window_seconds:g}s "
                    f"(limit {repeat.limit})"
                )
                error(f"Blocked repeated command: {text} (count={repeat.count})")
                return Evaluation(
                    **base,
                    decision=Decision(Action.BLOCK, risk, tuple(codes), tuple(reasons)),
                    state=GuardState.BLOCKED,
                    gate_codes=gated,
                    repeat=repeat,
                    target=ExecutionTarget.NONE,
                    block_reason=BLOCK_REPEAT,
                )
            if repeat.warn:
                reasons.append(f"repeated {repeat.count} times within {repeat.window_seconds:g}s")

            base.update(gate_codes=gated, repeat=repeat)

            # Step 4a: outbound http(s)
            urls = external_urls(text)
            if urls and not ctx.allow_net:
                reasons.append(
                    f"external http(s) endpoint {urls[0]} is blocked under execguard; "
                    f"set {ALLOW_NET_ENV}=1 to allow network access"
                )
                error(f"Blocked external http(s) access: {text}")
                return Evaluation(
                    **base,
                    decision=Decision(Action.BLOCK, risk, tuple(codes), tuple(reasons)),
                    state=GuardState.BLOCKED,
                    target=ExecutionTarget.NONE,
                    block_reason=BLOCK_EXTERNAL_HTTP,
                )

            target = self._select_target(risk, bool(gated), ctx)
            allowed_action = Action.WARN if repeat.warn else Action.ALLOW
            allowed_state = GuardState.WARNED if repeat.warn else GuardState.ALLOWED

            # Step 5: guard level off
            if ctx.level == GuardLevel.OFF:
                return Evaluation(
                    **base,
                    decision=Decision(allowed_action, risk, (), tuple(reasons)),
                    state=allowed_state,
                    target=target,
                )

            # Step 5a: sudo
            if is_sudo(text) and not ctx.allow_sudo:
                reasons.append(
                    f"sudo is blocked under execguard; set {ALLOW_SUDO_ENV}=1 to allow it"
                )
                error(f"Blocked sudo: {text}")
                return Evaluation(
                    **base,
                    decision=Decision(Action.BLOCK, risk, tuple(codes), tuple(reasons)),
                    state=GuardState.BLOCKED,
                    target=ExecutionTarget.NONE,
                    block_reason=BLOCK_SUDO,
                )

            # Step 6: guard-level filter
            surfaced = active_findings(findings, ctx.level)
            if marker:
                # Findings that production context escalated stay visible
                surfaced = [f for f in findings if f in surfaced or f.severity == base_risk]
            active = finding_codes(surfaced)
            if not requires_approval(risk, ctx.level):
                return Evaluation(
                    **base,
                    decision=Decision(allowed_action, risk, tuple(active), tuple(reasons)),
                    state=allowed_state,
                    target=target,
                )

            reasons.append(f"{risk.value} risk requires approval at guard level {ctx.level.value}")

            # Step 7: trust store, bypass, interactive approval
            if not gated and self._is_trusted(text, ctx):
                reasons.append("trusted command (remembered approval)")
                return Evaluation(
                    **base,
                    decision=Decision(allowed_action, risk, tuple(active), tuple(reasons)),
                    state=allowed_state,
                    target=target,
                    approval="trusted",
                    trusted=True,
                )

            if config.guard_level.allow_user_bypass and ctx.bypass_value is not None:
                if gated:
                    reasons.append("bypass ignored for critical command")
                elif is_valid_bypass(ctx.bypass_value):
                    info(f"Command allowed by operator bypass: {text}")
                    reasons.append("operator bypass accepted")
                    return Evaluation(
                        **base,
                        decision=Decision(allowed_action, risk, tuple(active), tuple(reasons)),
                        state=allowed_state,
                        target=target,
                        approval="bypass",
                        bypass_used=True,
                    )
                else:
                    warning(f"Rejected bypass value from {ctx.bypass_env_var}")
                    reasons.append("bypass value rejected")

            if ctx.interactive:
                return Evaluation(
                    **base,
                    decision=Decision(
                        Action.REQUIRE_APPROVAL, risk, tuple(active), tuple(reasons)
                    ),
                    state=GuardState.AWAITING_APPROVAL,
                    target=target,
                    approval="pending",
                )

            reasons.append("approval required but running non-interactively")
            error(f"Blocked by guard level {ctx.level.value}: {text}")
            return Evaluation(
                **base,
                decision=Decision(Action.BLOCK, risk, tuple(active), tuple(reasons)),
                state=GuardState.BLOCKED,
                target=ExecutionTarget.NONE,
                block_reason=BLOCK_GUARD_LEVEL,
            )

    def _is_trusted(self, text: str, ctx: GuardContext) -> bool:
        if self.trust_store is None:
            return False
        try:
            return self.trust_store.is_trusted(text, ctx.now)
        except Exception as e:
            warning(f"Trust store lookup failed: {e}")
            return False

    def _select_target(self, risk: Severity, gated: bool, ctx: GuardContext) -> ExecutionTarget:
        if gated:
            return ExecutionTarget.SANDBOX
        mode = ctx.config.sandbox.mode if ctx.config.sandbox.enabled else "never"
        wants_sandbox = (
            mode == "always"
            or (mode == "risky" and risk >= Severity.HIGH)
            or (mode == "auto" and risk == Severity.CRITICAL)
        )
        if not wants_sandbox:
            return ExecutionTarget.HOST
        if ctx.sandbox_available:
            return ExecutionTarget.SANDBOX
        warning(f"Sandbox mode '{mode}' wanted a sandbox but none is available, using host")
        return ExecutionTarget.HOST

    # === Suspension point ===

    def resolve_approval(
        self, evaluation: Evaluation, approved: bool, remember: bool = False
    ) -> Evaluation:
        """Resume an evaluation waiting on the operator"""
        if not evaluation.awaiting_approval:
            return evaluation
        decision = evaluation.decision
        if not approved:
            return replace(
                evaluation,
                decision=replace(
                    decision,
                    action=Action.BLOCK,
                    reasons=decision.reasons + ("denied by operator",),
                ),
                state=GuardState.BLOCKED,
                target=ExecutionTarget.NONE,
                block_reason=BLOCK_USER_DENIED,
                approval="denied",
            )

        action = Action.WARN if evaluation.repeat.warn else Action.ALLOW
        state = GuardState.WARNED if evaluation.repeat.warn else GuardState.ALLOWED
        if remember and self.trust_store is not None and not evaluation.gate_codes:
            try:
                self.trust_store.add(evaluation.normalized)
            except OSError as e:
                error(f"Could not remember approval: {e}")
        return replace(
            evaluation,
            decision=replace(
                decision, action=action, reasons=decision.reasons + ("approved by operator",)
            ),
            state=state,
            approval="operator",
        )

    # === Steps 8-9 ===

    def execute(
        self, evaluation: Evaluation, session_id: Optional[str], ctx: GuardContext
    ) -> RunResult:
        """Dispatch an allowed command (or deny it) and append the audit record"""
        if evaluation.awaiting_approval:
            raise ApprovalRequiredError(
                f"Command needs operator approval before execution: {evaluation.normalized}"
            )

        with log_context(session_id=session_id):
            started = time.monotonic()
            if evaluation.decision.may_execute:
                runner = (
                    self.sandbox_runner
                    if evaluation.target == ExecutionTarget.SANDBOX
                    else self.host_runner
                )
                info(f"Executing on {evaluation.target.value}: {evaluation.normalized}")
                exit_code = runner.run(evaluation.command, list(evaluation.args))
                state = GuardState.EXECUTED
                if evaluation.trusted and self.trust_store is not None:
                    try:
                        self.trust_store.record_use(evaluation.normalized, ctx.now)
                    except (KeyError, OSError) as e:
                        debug(f"Trust use not recorded: {e}")
            else:
                exit_code = None
                state = GuardState.DENIED
            duration_ms = int((time.monotonic() - started) * 1000)

            record = self.audit_record(evaluation, ctx, exit_code, duration_ms)
            self._append(session_id, record)

        return RunResult(
            evaluation=evaluation,
            state=state,
            exit_code=POLICY_EXIT_CODE if exit_code is None else exit_code,
            duration_ms=duration_ms,
            record=record,
        )

    def audit_record(
        self,
        evaluation: Evaluation,
        ctx: GuardContext,
        exit_code: Optional[int],
        duration_ms: int,
    ) -> Command:
        executed = evaluation.decision.may_execute
        return Command(
            timestamp=ctx.now,
            command=evaluation.command,
            args=list(evaluation.args),
            exit_code=exit_code,
            duration_ms=duration_ms,
            risk_level=evaluation.risk.value,
            approved=executed,
            findings=finding_codes(evaluation.findings),
            metadata={
                "source": AUDIT_SOURCE,
                "execution": evaluation.target.value if executed else ExecutionTarget.NONE.value,
                "bypass": evaluation.bypass_used,
                "blocked": not executed,
                "block_reason": evaluation.block_reason,
                "guard_level": evaluation.guard_level.value,
                "repeat_count": evaluation.repeat.count,
                "trusted": evaluation.trusted,
                "approval": evaluation.approval,
                "degraded": bool(evaluation.degraded),
                "action": evaluation.decision.action.value,
            },
        )

    def _append(self, session_id: Optional[str], record) -> None:
        if not session_id or self.store is None:
            debug("No active session, audit record not stored")
            return
        try:
            self.store.append_command(session_id, record)
        except Exception as e:
            # Degraded mode: the decision already stands
            error(f"Audit append failed for session {session_id}: {e}")

    def run(
        self,
        command: str,
        args: Sequence[str],
        session_id: Optional[str],
        ctx: GuardContext,
        approver: Optional[Approver] = None,
    ) -> RunResult:
        """evaluate -> (interactive) approval -> execute"""
        evaluation = self.evaluate(command, args, session_id, ctx)
        if evaluation.awaiting_approval:
            answer = approver(evaluation) if approver is not None else Approval.DENY
            evaluation = self.resolve_approval(
                evaluation,
                approved=answer in (Approval.APPROVE, Approval.REMEMBER),
                remember=answer == Approval.REMEMBER,
            )
        return self.execute(evaluation, session_id, ctx)
