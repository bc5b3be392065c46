"""
execguard - Execution guard for shell commands issued by coding agents.

Intercepts a command before it runs, classifies its risk, and decides
whether to allow it, warn, ask the operator, force a sandbox, or block it.
"""

__version__ = "0.4.0"
