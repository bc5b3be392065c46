"""
Execution runners - host and sandboxed child processes

Provides:
- HostRunner: Run a command directly, stdio inherited
- SandboxRunner: Run a command under bubblewrap, docker or podman

Both block until the child exits; there is no internal timeout.
"""

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import SandboxConfig
from ..errors import SandboxUnavailableError
from ..utils.logger import debug, info, warning

EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127

# Preference order for runtime auto-detection
RUNTIME_BINARIES = (
    ("bubblewrap", "bwrap"),
    ("docker", "docker"),
    ("podman", "podman"),
)


def _spawn(argv: List[str], cwd: Optional[str] = None) -> int:
    try:
        completed = subprocess.run(argv, cwd=cwd)
    except FileNotFoundError:
        warning(f"Command not found: {argv[0]}")
        return EXIT_NOT_FOUND
    except PermissionError:
        warning(f"Command not executable: {argv[0]}")
        return EXIT_NOT_EXECUTABLE
    # Signals come back negative; report them shell-style
    if completed.returncode < 0:
        return 128 + (-completed.returncode)
    return completed.returncode


class HostRunner:
    """Runs commands on the host"""

    def __init__(self, cwd: Optional[str] = None):
        self.cwd = cwd

    def run(self, command: str, args: Sequence[str] = ()) -> int:
        debug(f"host exec: {command} {' '.join(args)}")
        return _spawn([command, *args], cwd=self.cwd)


class SandboxRunner:
    """Runs commands inside an isolating runtime"""

    def __init__(self, config: Optional[SandboxConfig] = None, workspace: Optional[str] = None):
        self.config = config or SandboxConfig()
        self.workspace = str(Path(workspace or os.getcwd()).resolve())
        self._runtime: Optional[str] = None
        self._detected = False

    @property
    def runtime(self) -> Optional[str]:
        """Runtime name (bubblewrap, docker, podman) or None"""
        if not self._detected:
            self._runtime = self._detect_runtime()
            self._detected = True
        return self._runtime

    def _detect_runtime(self) -> Optional[str]:
        if not self.config.enabled:
            return None
        wanted = self.config.runtime
        for name, binary in RUNTIME_BINARIES:
            if wanted not in ("auto", name):
                continue
            if name == "bubblewrap" and not sys.platform.startswith("linux"):
                continue
            if shutil.which(binary):
                debug(f"sandbox runtime: {name}")
                return name
        return None

    def is_available(self) -> bool:
        return self.runtime is not None

    def build_argv(self, command: str, args: Sequence[str] = ()) -> List[str]:
        runtime = self.runtime
        if runtime is None:
            raise SandboxUnavailableError("No sandbox runtime available (bwrap, docker or podman)")
        if runtime == "bubblewrap":
            return self._bubblewrap_argv(command, args)
        return self._container_argv(runtime, command, args)

    def _bubblewrap_argv(self, command: str, args: Sequence[str]) -> List[str]:
        ws = self.workspace
        argv = [
            "bwrap",
            "--ro-bind", "/", "/",
            "--dev", "/dev",
            "--proc", "/proc",
            "--tmpfs", "/tmp",
            "--bind", ws, ws,
            "--chdir", ws,
            "--unshare-pid",
            "--die-with-parent",
        ]
        if self.config.network == "none":
            argv.append("--unshare-net")
        return argv + ["--", command, *args]

    def _container_argv(self, runtime: str, command: str, args: Sequence[str]) -> List[str]:
        argv = [runtime, "run", "--rm", "-i"]
        if sys.stdin.isatty() and sys.stdout.isatty():
            argv.append("-t")
        argv += [
            "-v", f"{self.workspace}:/workspace",
            "-w", "/workspace",
            "--network", "none" if self.config.network == "none" else "bridge",
            self.config.image,
            command,
            *args,
        ]
        return argv

    def run(self, command: str, args: Sequence[str] = ()) -> int:
        argv = self.build_argv(command, args)
        info(f"sandbox exec ({self.runtime}): {command} {' '.join(args)}")
        return _spawn(argv)
