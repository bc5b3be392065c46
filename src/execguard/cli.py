"""CLI entry point for execguard.

Usage:
    execguard exec [-i] [--session ID] [--config PATH] -- <command> [args...]
    execguard explain "<command line>"
    execguard session start|end|list|show
    execguard audit [--session ID | --all]
    execguard config [--defaults]
    execguard trust list|add|remove|clean [command...]
    execguard serve [--port N]

Exit codes:
    0    command ran and succeeded
    3    blocked or denied by policy
    2    usage or configuration error
    127  command not found
    130  interrupted
    *    the command's own exit code
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from . import __version__
from .analyzer import build_analyzer
from .config import GuardConfig, render_config_yaml
from .errors import ExecGuardError, SessionError
from .guard.orchestrator import (
    POLICY_EXIT_CODE,
    Approval,
    Evaluation,
    ExecutionGuard,
    GuardContext,
)
from .guard.repeat import normalize_command
from .guard.report import format_decision, format_warning
from .guard.trust import TrustStore
from .guard.types import GuardState
from .sandbox import HostRunner, SandboxRunner
from .session import SessionStore
from .utils.logger import setup_logging, warning

EXIT_USAGE = 2
EXIT_INTERRUPTED = 130
# Seconds exec waits for another process to release the session database
STORE_LOCK_TIMEOUT = 5.0


def _err(message: str) -> None:
    print(message, file=sys.stderr)


def _db_path(args) -> Optional[Path]:
    db = getattr(args, "db", None)
    return Path(db) if db else None


def _open_store(args, **options) -> SessionStore:
    options.setdefault("lock_timeout", STORE_LOCK_TIMEOUT)
    return SessionStore(_db_path(args), **options)


def _open_trust(config: GuardConfig) -> TrustStore:
    path = config.sandbox.trust_store_path
    return TrustStore(Path(path).expanduser() if path else None)


def prompt_approver(evaluation: Evaluation) -> Approval:
    """Ask the operator on the terminal; anything but y/r denies"""
    try:
        answer = input("Approve? [y]es / [r]emember / [N]o: ").strip().lower()
    except EOFError:
        return Approval.DENY
    if answer in ("y", "yes"):
        return Approval.APPROVE
    if answer in ("r", "remember"):
        return Approval.REMEMBER
    return Approval.DENY


def _split_command(argv: List[str]) -> List[str]:
    if argv and argv[0] == "--":
        argv = argv[1:]
    return argv


def cmd_exec(args) -> int:
    """Handle exec command."""
    argv = _split_command(args.argv)
    if not argv:
        _err("execguard exec: missing command (use: execguard exec -- <command> [args...])")
        return EXIT_USAGE

    cwd = os.getcwd()
    config = GuardConfig.load(Path(args.config) if args.config else None)
    if args.level:
        config = config.with_level(args.level)

    # Released between operations so other guarded commands and the dashboard
    # can use the database while this command runs
    store: Optional[SessionStore] = _open_store(args, keep_open=False)
    session_id = args.session
    try:
        if session_id is None:
            session_id = store.current_session_id(cwd)
    except (SessionError, OSError) as e:
        warning(f"Session store unavailable, running without audit: {e}")
        store.close()
        store = None

    sandbox = SandboxRunner(config.sandbox, workspace=cwd)
    ctx = GuardContext.from_environment(
        config,
        command_text=" ".join(argv),
        interactive=args.interactive,
        sandbox_available=sandbox.is_available(),
        cwd=cwd,
    )
    guard = ExecutionGuard(
        classifiers=[build_analyzer(config.policies)],
        store=store,
        host_runner=HostRunner(),
        sandbox_runner=sandbox,
        trust_store=_open_trust(config),
    )

    def approver(evaluation: Evaluation) -> Approval:
        _err(format_decision(evaluation, ctx.bypass_env_var))
        return prompt_approver(evaluation)

    try:
        result = guard.run(argv[0], argv[1:], session_id, ctx, approver=approver)
    finally:
        if store is not None:
            store.close()
    evaluation = result.evaluation

    if result.state == GuardState.DENIED:
        if evaluation.approval != "denied":
            _err(format_decision(evaluation, ctx.bypass_env_var))
        else:
            _err(f"Denied: {evaluation.normalized}")
        return POLICY_EXIT_CODE

    notice = format_warning(evaluation)
    if notice:
        _err(notice)
    return result.exit_code


def cmd_explain(args) -> int:
    """Handle explain command."""
    text = " ".join(args.command).strip()
    if not text:
        _err("execguard explain: missing command")
        return EXIT_USAGE
    config = GuardConfig.load(Path(args.config) if args.config else None)
    if args.level:
        config = config.with_level(args.level)
    sandbox = SandboxRunner(config.sandbox)
    ctx = GuardContext.from_environment(
        config, command_text=text, sandbox_available=sandbox.is_available()
    )
    guard = ExecutionGuard([build_analyzer(config.policies)])
    evaluation = guard.evaluate(text, (), None, ctx)
    decision = evaluation.decision

    if args.json:
        payload = decision.to_dict()
        payload.update(
            {
                "command": text,
                "guard_level": ctx.level.value,
                "base_risk": evaluation.base_risk.value,
                "execution": evaluation.target.value,
                "findings": [
                    {
                        "code": f.code,
                        "severity": f.severity.value,
                        "description": f.description,
                        "recommendation": f.recommendation,
                    }
                    for f in evaluation.findings
                ],
            }
        )
        print(json.dumps(payload, indent=2))
        return 0

    print(f"Command:     {text}")
    print(f"Guard level: {ctx.level.value}")
    print(f"Risk:        {decision.risk_level.value} (base {evaluation.base_risk.value})")
    print(f"Decision:    {decision.action.value}")
    print(f"Execution:   {evaluation.target.value}")
    if evaluation.findings:
        print("Findings:")
        for f in evaluation.findings:
            print(f"  [{f.severity.value}] {f.code}: {f.description}")
            if f.recommendation:
                print(f"      -> {f.recommendation}")
    else:
        print("Findings:    none")
    for reason in decision.reasons:
        print(f"  - {reason}")
    return 0


def cmd_session(args) -> int:
    """Handle session subcommands."""
    with _open_store(args) as store:
        return _session_action(args, store, os.getcwd())


def _session_action(args, store: SessionStore, cwd: str) -> int:
    if args.action == "start":
        session = store.start_session(args.workspace or cwd, agent=args.agent or "")
        print(session.id)
        _err(f"export EXECGUARD_SESSION_ID={session.id}")
        return 0

    if args.action == "list":
        sessions = store.list_sessions(limit=args.limit)
        if args.json:
            print(json.dumps([s.to_dict() for s in sessions], indent=2))
            return 0
        for s in sessions:
            status = "active" if s.is_active else "ended"
            print(f"{s.id}  {status:<6}  {s.started_at:%Y-%m-%d %H:%M}  {s.workspace}")
        return 0

    session_id = args.session_id or store.current_session_id(cwd)
    if not session_id:
        _err("No active session for this workspace")
        return EXIT_USAGE

    if args.action == "end":
        session = store.end_session(session_id)
        print(f"Ended {session.id}")
        return 0

    session = store.get_session(session_id)
    if session is None:
        raise SessionError(f"Unknown session: {session_id}")
    commands = store.load_history(session_id)
    if args.json:
        data = session.to_dict()
        data["commands"] = [c.to_dict() for c in commands]
        print(json.dumps(data, indent=2))
        return 0
    print(f"Session {session.id} ({session.workspace})")
    for c in commands:
        meta = c.metadata
        status = "BLOCKED" if c.blocked else f"exit={c.exit_code}"
        line = " ".join([c.command, *c.args])
        print(f"  {c.timestamp:%H:%M:%S}  {c.risk_level:<8}  {meta.get('execution', '-'):<7}  {status:<10}  {line}")
    return 0


def cmd_audit(args) -> int:
    """Handle audit command."""
    with _open_store(args) as store:
        return _audit(args, store)


def _audit(args, store: SessionStore) -> int:
    if args.all:
        session_ids = [s.id for s in store.list_sessions(limit=args.limit)]
    else:
        session_id = args.session or store.current_session_id(os.getcwd())
        if not session_id:
            _err("No active session for this workspace (use --session ID or --all)")
            return EXIT_USAGE
        if store.get_session(session_id) is None:
            raise SessionError(f"Unknown session: {session_id}")
        session_ids = [session_id]

    summaries = [store.summarize(sid) for sid in session_ids]
    if args.json:
        print(json.dumps([s.to_dict() for s in summaries], indent=2))
        return 0
    for s in summaries:
        counts = ", ".join(f"{k}={v}" for k, v in s.by_risk.items())
        print(
            f"{s.session_id}: {s.total_commands} commands, {s.blocked_commands} blocked, "
            f"{s.violations} violations, risk score {s.risk_score} ({counts})"
        )
    return 0


def cmd_config(args) -> int:
    """Handle config command."""
    if args.defaults:
        print(render_config_yaml(), end="")
        return 0
    config = GuardConfig.load(Path(args.config) if args.config else None)
    print(render_config_yaml(config), end="")
    return 0


def cmd_trust(args) -> int:
    """Handle trust subcommands."""
    store = _open_trust(GuardConfig.load(Path(args.config) if args.config else None))
    if args.action == "list":
        entries = store.list()
        if args.json:
            print(json.dumps([asdict(e) for e in entries], indent=2))
            return 0
        for e in entries:
            expires = e.expires_at or "never"
            print(f"{e.command_hash[:12]}  uses={e.use_count:<4} expires={expires}  {e.command}")
        return 0
    if args.action == "clean":
        print(f"Removed {store.clean_expired()} expired entries")
        return 0

    words = _split_command(args.command_line)
    text = normalize_command(words[0], words[1:]) if words else ""
    if not text:
        _err(f"execguard trust {args.action}: missing command")
        return EXIT_USAGE
    if args.action == "add":
        duration = timedelta(hours=args.hours) if args.hours else None
        entry = store.add(text, duration=duration, note=args.note or "")
        print(f"Trusted {entry.command_hash[:12]}: {text}")
        return 0
    if not store.remove(text):
        _err(f"Not trusted: {text}")
        return EXIT_USAGE
    print(f"Removed: {text}")
    return 0


def cmd_serve(args) -> int:
    """Handle serve command."""
    from .api import DashboardAPIServer

    server = DashboardAPIServer(db_path=_db_path(args), host=args.host, port=args.port)
    _err(f"Serving execguard dashboard API on {server.url}")
    server.serve_forever()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="execguard",
        description="Guard shell commands run by coding agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"execguard {__version__}")
    parser.add_argument("--db", help="Session database path (default ~/.execguard/sessions.duckdb)")
    subparsers = parser.add_subparsers(dest="subcommand", metavar="<command>")
    subparsers.required = True

    p = subparsers.add_parser("exec", help="Run a command through the guard")
    p.add_argument("-i", "--interactive", action="store_true", help="Prompt for approval")
    p.add_argument("--session", help="Session ID (default: current for workspace)")
    p.add_argument("--config", help="Config file (highest precedence)")
    p.add_argument("--level", choices=["off", "low", "medium", "high", "paranoid", "auto"])
    p.add_argument("argv", nargs=argparse.REMAINDER, help="-- command [args...]")
    p.set_defaults(func=cmd_exec)

    p = subparsers.add_parser("explain", help="Show findings and decision without running")
    p.add_argument("command", nargs="+", help="Command line to explain")
    p.add_argument("--config", help="Config file (highest precedence)")
    p.add_argument("--level", choices=["off", "low", "medium", "high", "paranoid", "auto"])
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_explain)

    p = subparsers.add_parser("session", help="Manage agent sessions")
    p.add_argument("action", choices=["start", "end", "list", "show"])
    p.add_argument("session_id", nargs="?", help="Session ID for end/show")
    p.add_argument("--agent", help="Agent name (start)")
    p.add_argument("--workspace", help="Workspace directory (start)")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_session)

    p = subparsers.add_parser("audit", help="Summarize session risk")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--session", help="Session ID")
    group.add_argument("--all", action="store_true", help="All recent sessions")
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_audit)

    p = subparsers.add_parser("config", help="Show effective configuration")
    p.add_argument("--config", help="Config file (highest precedence)")
    p.add_argument("--defaults", action="store_true", help="Show built-in defaults")
    p.set_defaults(func=cmd_config)

    p = subparsers.add_parser("trust", help="Manage remembered approvals")
    p.add_argument("action", choices=["list", "add", "remove", "clean"])
    p.add_argument("command_line", nargs="*", help="Command line for add/remove")
    p.add_argument("--hours", type=float, help="Expiry for add (default: never)")
    p.add_argument("--note", help="Note for add")
    p.add_argument("--config", help="Config file (highest precedence)")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_trust)

    p = subparsers.add_parser("serve", help="Serve the dashboard API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=19880)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()
    try:
        return args.func(args)
    except KeyboardInterrupt:
        _err("Interrupted")
        return EXIT_INTERRUPTED
    except ExecGuardError as e:
        _err(f"execguard: {e}")
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
