"""
Logging for execguard, built on loguru.

Records go to rotating files under ~/.execguard/logs, as plain text and as
JSON lines. Console output is opt-in: stderr carries the guarded command's
own output and the approval prompt.

Environment:
- EXECGUARD_LOG_DIR: log directory
- EXECGUARD_LOG_LEVEL: minimum level (default INFO)
- EXECGUARD_DEBUG: DEBUG level plus console output
- EXECGUARD_LOG_CONSOLE: force console output on (1) or off (0)
"""

import os
import secrets
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from loguru import logger

DEFAULT_LOG_DIR = Path.home() / ".execguard" / "logs"
TEXT_LOG_NAME = "execguard.log"
JSON_LOG_NAME = "execguard.json"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> "
    "<cyan>{name}:{line}</cyan> {message}{extra[context]}"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} | {message}{extra[context]}"
)

# Keys bound by log_context, rendered in this order
_CONTEXT_KEYS = ("session_id", "eval_id")


def _render_context(record: Dict[str, Any]) -> None:
    extra = record["extra"]
    parts = [f"{key[:-3]}={extra[key]}" for key in _CONTEXT_KEYS if extra.get(key)]
    extra["context"] = f" [{' '.join(parts)}]" if parts else ""


logger.configure(patcher=_render_context)


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_log_dir() -> Path:
    override = os.getenv("EXECGUARD_LOG_DIR")
    return Path(override).expanduser() if override else DEFAULT_LOG_DIR


def setup_logging(log_dir: Optional[Path] = None) -> None:
    """Install execguard's sinks, replacing any existing ones."""
    debug_mode = _env_flag("EXECGUARD_DEBUG")
    level = os.getenv("EXECGUARD_LOG_LEVEL", "DEBUG" if debug_mode else "INFO").upper()

    logger.remove()
    logger.configure(patcher=_render_context)
    if _env_flag("EXECGUARD_LOG_CONSOLE", default=debug_mode):
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True, diagnose=False)

    directory = log_dir or get_log_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError:
        # No file sinks when the directory is unwritable
        return
    logger.add(
        directory / TEXT_LOG_NAME,
        format=FILE_FORMAT,
        level=level,
        rotation="10 MB",
        retention=5,
        compression="gz",
        diagnose=False,
    )
    logger.add(
        directory / JSON_LOG_NAME,
        level=level,
        serialize=True,
        rotation="20 MB",
        retention=3,
        compression="gz",
        diagnose=False,
    )


@contextmanager
def log_context(
    session_id: Optional[str] = None,
    eval_id: Optional[str] = None,
    new_eval: bool = False,
) -> Iterator[Dict[str, Optional[str]]]:
    """Tag records logged inside the block with a session and evaluation id.

    With new_eval=True a short random evaluation id is generated when none
    is given. Nested blocks inherit the outer ids.
    """
    if new_eval and not eval_id:
        eval_id = secrets.token_hex(4)
    bound = {key: value for key, value in (("session_id", session_id), ("eval_id", eval_id)) if value}
    with logger.contextualize(**bound):
        yield {"session_id": session_id, "eval_id": eval_id}


# Helpers log at the caller's frame; messages are passed through unformatted


def debug(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.opt(depth=1).debug(msg, *args, **kwargs)


def info(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.opt(depth=1).info(msg, *args, **kwargs)


def warning(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.opt(depth=1).warning(msg, *args, **kwargs)


def error(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.opt(depth=1).error(msg, *args, **kwargs)


def exception(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.opt(depth=1, exception=True).error(msg, *args, **kwargs)


__all__ = [
    "debug",
    "info",
    "warning",
    "error",
    "exception",
    "setup_logging",
    "get_log_dir",
    "log_context",
    "logger",
]
