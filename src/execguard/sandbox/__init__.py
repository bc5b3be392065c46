"""Host and sandboxed command runners."""

from .runner import EXIT_NOT_FOUND, HostRunner, SandboxRunner

__all__ = ["EXIT_NOT_FOUND", "HostRunner", "SandboxRunner"]
