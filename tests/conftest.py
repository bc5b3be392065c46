"""
Pytest configuration and shared fixtures for execguard tests.

This module provides:
- Stub classifiers and recording runners for the orchestrator
- In-memory session store and trust store fixtures
- A fixed clock and a guard context factory
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pytest
from faker import Faker

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from execguard.config import GuardConfig  # noqa: E402
from execguard.guard.orchestrator import ExecutionGuard, GuardContext  # noqa: E402
from execguard.guard.trust import TrustStore  # noqa: E402
from execguard.guard.types import Finding, GuardLevel, Severity  # noqa: E402
from execguard.session import SessionStore  # noqa: E402

fake = Faker()

FIXED_NOW = datetime(2026, 3, 2, 14, 30, 0)


# =============================================================================
# Collaborator doubles
# =============================================================================


class StubClassifier:
    """Returns the same findings for every command."""

    def __init__(self, findings: Sequence[Finding] = ()):
        self.findings = list(findings)
        self.calls: List[str] = []

    def analyze(self, path, content, policy):
        self.calls.append(content)
        return list(self.findings)


class FailingClassifier:
    """Raises on every call, like a scanner that cannot start."""

    def analyze(self, path, content, policy):
        raise RuntimeError("scanner crashed")


class RecordingRunner:
    """Records run() calls and returns a fixed exit code."""

    def __init__(self, exit_code: int = 0):
        self.exit_code = exit_code
        self.calls: List[tuple] = []

    def run(self, command, args=()):
        self.calls.append((command, list(args)))
        return self.exit_code


def finding(code: str, severity: str = "high") -> Finding:
    return Finding(code=code, severity=Severity.parse(severity), description=f"{code} detected")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def store() -> SessionStore:
    """Fresh in-memory session store."""
    s = SessionStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def workspace(tmp_path: Path) -> str:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return str(ws)


@pytest.fixture
def session_id(store: SessionStore, workspace: str, now: datetime) -> str:
    return store.start_session(workspace, agent="test-agent", now=now).id


@pytest.fixture
def trust_store(tmp_path: Path) -> TrustStore:
    return TrustStore(tmp_path / "trust.json")


@pytest.fixture
def host_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def sandbox_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def make_ctx(now: datetime):
    """Factory for GuardContext with a fixed clock."""

    def factory(
        level="medium",
        bypass_value: Optional[str] = None,
        sandbox_available: bool = False,
        interactive: bool = False,
        config: Optional[GuardConfig] = None,
        at: Optional[datetime] = None,
        allow_sudo: bool = False,
        allow_net: bool = False,
    ) -> GuardContext:
        return GuardContext(
            config=config or GuardConfig(),
            level=GuardLevel.parse(level),
            bypass_value=bypass_value,
            sandbox_available=sandbox_available,
            interactive=interactive,
            now=at or now,
            allow_sudo=allow_sudo,
            allow_net=allow_net,
        )

    return factory


@pytest.fixture
def make_guard(store, host_runner, sandbox_runner, trust_store):
    """Factory for ExecutionGuard wired to stub findings and recording runners."""

    def factory(findings: Sequence[Finding] = (), classifiers=None, with_store: bool = True):
        return ExecutionGuard(
            classifiers=classifiers if classifiers is not None else [StubClassifier(findings)],
            store=store if with_store else None,
            host_runner=host_runner,
            sandbox_runner=sandbox_runner,
            trust_store=trust_store,
        )

    return factory
