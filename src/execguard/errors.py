"""
Exception hierarchy for execguard.

Policy denials are not exceptions: a blocked command is a Decision with
action=block. These errors cover misconfiguration and collaborator faults.
"""


class ExecGuardError(Exception):
    """Base class for execguard errors"""


class ConfigError(ExecGuardError):
    """Configuration file could not be read or holds invalid values"""


class SessionError(ExecGuardError):
    """Session store failure or unknown session"""


class SandboxUnavailableError(ExecGuardError):
    """Sandboxed execution requested but no sandbox runtime is usable"""


class ApprovalRequiredError(ExecGuardError):
    """An evaluation awaiting approval was executed before being resolved"""
