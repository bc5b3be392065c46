"""
Configuration management for execguard

Files are merged in increasing precedence:
- ~/.config/execguard/config.yaml (user)
- ./execguard.yaml (project)
- an explicit --config path

Unknown keys are ignored so older files keep loading. The
EXECGUARD_GUARD_LEVEL environment variable overrides guard_level.level.
"""

import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError
from .guard.escalation import DEFAULT_PRODUCTION_MARKERS
from .guard.repeat import RepeatPolicy
from .utils.logger import debug

CONFIG_DIR = Path(os.path.expanduser("~/.config/execguard"))
USER_CONFIG_FILE = CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME = "execguard.yaml"
GUARD_LEVEL_ENV = "EXECGUARD_GUARD_LEVEL"

GUARD_LEVEL_CHOICES = ("auto", "off", "low", "medium", "high", "paranoid")
SANDBOX_MODES = ("auto", "risky", "always", "never")
SANDBOX_RUNTIMES = ("auto", "bubblewrap", "docker", "podman")
SANDBOX_NETWORKS = ("none", "full")


@dataclass(frozen=True)
class GuardLevelConfig:
    """Strictness and override settings"""

    level: str = "auto"
    allow_user_bypass: bool = True
    bypass_env_var: str = "EXECGUARD_BYPASS"


@dataclass(frozen=True)
class PolicyConfig:
    """Classifier policy lists and switches"""

    allowlist: Tuple[str, ...] = ()
    denylist: Tuple[str, ...] = ()
    monitor_git_ops: bool = True
    detect_prod_env: bool = True
    prod_env_patterns: Tuple[str, ...] = DEFAULT_PRODUCTION_MARKERS
    custom_patterns_file: Optional[str] = None


@dataclass(frozen=True)
class ProductionIndicators:
    """Signals used when guard_level is auto"""

    branches: Tuple[str, ...] = ("main", "master", "production", "release")
    keywords: Tuple[str, ...] = DEFAULT_PRODUCTION_MARKERS


@dataclass(frozen=True)
class SandboxConfig:
    """Where allowed commands run"""

    enabled: bool = True
    mode: str = "auto"
    runtime: str = "auto"
    image: str = "ubuntu:22.04"
    network: str = "none"
    trust_store_path: Optional[str] = None


@dataclass(frozen=True)
class GuardConfig:
    """Complete execguard configuration"""

    guard_level: GuardLevelConfig = field(default_factory=GuardLevelConfig)
    policies: PolicyConfig = field(default_factory=PolicyConfig)
    production_indicators: ProductionIndicators = field(
        default_factory=ProductionIndicators
    )
    repeat: RepeatPolicy = field(default_factory=RepeatPolicy)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GuardConfig":
        """Build a config from a parsed mapping, ignoring unknown keys"""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigError(f"Config root must be a mapping, got {type(data).__name__}")

        sections = {}
        for f in fields(cls):
            raw = data.get(f.name)
            if raw is None:
                continue
            if not isinstance(raw, Mapping):
                raise ConfigError(f"Config section '{f.name}' must be a mapping")
            sections[f.name] = _build_section(f.default_factory, raw, f.name)

        config = cls(**sections)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        level = str(self.guard_level.level).lower()
        if level not in GUARD_LEVEL_CHOICES:
            raise ConfigError(
                f"Unknown guard level '{self.guard_level.level}' "
                f"(expected one of: {', '.join(GUARD_LEVEL_CHOICES)})"
            )
        checks = (
            ("sandbox.mode", self.sandbox.mode, SANDBOX_MODES),
            ("sandbox.runtime", self.sandbox.runtime, SANDBOX_RUNTIMES),
            ("sandbox.network", self.sandbox.network, SANDBOX_NETWORKS),
        )
        for name, value, choices in checks:
            if value not in choices:
                raise ConfigError(f"Invalid {name} '{value}' (expected one of: {', '.join(choices)})")
        if not self.guard_level.bypass_env_var:
            raise ConfigError("guard_level.bypass_env_var must not be empty")

    def with_level(self, level: str) -> "GuardConfig":
        """Copy with guard_level.level replaced"""
        config = replace(self, guard_level=replace(self.guard_level, level=level))
        config.validate()
        return config

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "GuardConfig":
        """Load and merge config files, then apply the environment override"""
        env = os.environ if env is None else env
        merged: Dict[str, Any] = {}
        for candidate in config_paths(path, cwd):
            merged = _deep_merge(merged, _read_yaml(candidate))

        config = cls.from_dict(merged)
        override = env.get(GUARD_LEVEL_ENV)
        if override:
            debug(f"Guard level overridden by {GUARD_LEVEL_ENV}={override}")
            config = config.with_level(override.strip().lower())
        return config


def config_paths(explicit: Optional[Path] = None, cwd: Optional[Path] = None) -> list:
    """Existing config files, lowest precedence first"""
    project = (cwd or Path.cwd()) / PROJECT_CONFIG_NAME
    paths = [p for p in (USER_CONFIG_FILE, project) if p.is_file()]
    if explicit is not None:
        explicit = Path(explicit).expanduser()
        if not explicit.is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        paths.append(explicit)
    return paths


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be a mapping")
    debug(f"Loaded config from {path}")
    return data


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = _deep_merge(dict(result[key]), value)
        else:
            result[key] = value
    return result


def _build_section(factory, raw: Mapping[str, Any], name: str):
    default = factory()
    valid_fields = {f.name: f for f in fields(default)}
    values = {}
    for key, value in raw.items():
        if key not in valid_fields:
            continue
        if isinstance(getattr(default, key), tuple):
            if isinstance(value, str):
                value = (value,)
            value = tuple(str(v) for v in (value or ()))
        values[key] = value
    try:
        return replace(default, **values)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid '{name}' section: {e}") from e


def render_config_yaml(config: Optional[GuardConfig] = None) -> str:
    """Render a configuration (defaults if omitted) as YAML"""
    data = (config or GuardConfig()).to_dict()
    for section in data.values():
        for key, value in section.items():
            if isinstance(value, tuple):
                section[key] = list(value)
    return yaml.safe_dump(data, sort_keys=False)
