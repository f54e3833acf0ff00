"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all FleetShift settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config; CLI flags override both

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- Empty strings and zero timeouts mean "not set": the topology document or a
  run-time default applies instead
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "fleetshift.json"
ENV_PREFIX = "FLEETSHIFT"


@dataclass(frozen=True)
class VerificationConfig:
    """Pre-flight checks, each independently switchable."""
    files: bool = True
    nodes: bool = True
    target_dirs: bool = True


@dataclass(frozen=True)
class SSHConfig:
    """SSH connection settings."""
    timeout: float = 0.0
    keepalive_interval: float = 5.0


@dataclass(frozen=True)
class StateConfig:
    """Run-state persistence settings."""
    failed_nodes_file: str = ""
    rollback_file: str = ""
    rollback_suffix: str = ""


@dataclass(frozen=True)
class RunConfig:
    """Run behaviour."""
    action: str = "upgrade"
    dry_run: bool = True


@dataclass(frozen=True)
class FleetShiftConfig:
    """Root configuration for the FleetShift application."""
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    state: StateConfig = field(default_factory=StateConfig)
    run: RunConfig = field(default_factory=RunConfig)
    log_level: str = "WARNING"
    log_file: str = ""
    json_logs: bool = False

    def with_overrides(self, **sections: dict[str, Any]) -> "FleetShiftConfig":
        """Return a copy with non-None values of the given sections replaced.

        Example: config.with_overrides(run={"dry_run": False})
        """
        changes: dict[str, Any] = {}
        for name, values in sections.items():
            values = {k: v for k, v in values.items() if v is not None}
            if values:
                changes[name] = replace(getattr(self, name), **values)
        return replace(self, **changes)


_SECTIONS = {
    "verification": VerificationConfig,
    "ssh": SSHConfig,
    "state": StateConfig,
    "run": RunConfig,
}
_TOP_LEVEL = ("log_level", "log_file", "json_logs")


def _env_override(data: dict, prefix: str = ENV_PREFIX) -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern FLEETSHIFT_SECTION_KEY.
    For example: FLEETSHIFT_RUN_DRY_RUN=false, FLEETSHIFT_SSH_TIMEOUT=10
    Top-level keys use FLEETSHIFT_KEY, e.g. FLEETSHIFT_LOG_LEVEL=DEBUG.
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name in _TOP_LEVEL:
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2 and parts[0] in _SECTIONS:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s must contain a JSON object", path)
        return {}
    return data


def _coerce(value: Any, type_name: str) -> Any:
    if not isinstance(value, str):
        return value
    if type_name == "bool":
        return value.strip().lower() in ("true", "1", "yes", "on")
    if type_name == "int":
        return int(value)
    if type_name == "float":
        return float(value)
    return value


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        return cls()
    valid = {f.name: f.type for f in fields(cls)}
    filtered = {
        k: _coerce(v, valid[k]) for k, v in data.items() if k in valid
    }
    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = ENV_PREFIX,
) -> FleetShiftConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (FLEETSHIFT_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to fleetshift.json in CWD.
        env_prefix: Environment variable prefix. Defaults to FLEETSHIFT.
    """
    config_path = Path(path) if path else Path(DEFAULT_CONFIG_FILE)
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return FleetShiftConfig(
        verification=_build_sub_config(VerificationConfig, data.get("verification", {})),
        ssh=_build_sub_config(SSHConfig, data.get("ssh", {})),
        state=_build_sub_config(StateConfig, data.get("state", {})),
        run=_build_sub_config(RunConfig, data.get("run", {})),
        log_level=str(data.get("log_level", "WARNING")),
        log_file=str(data.get("log_file", "")),
        json_logs=_coerce(data.get("json_logs", False), "bool"),
    )
