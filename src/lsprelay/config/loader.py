"""Configuration file loading.

Handles:
- Default config file discovery in the working directory
- YAML parsing
- Environment variable overrides
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from lsprelay.config.schema import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    ClientConfig,
    Config,
    LoggingConfig,
    ServerConfig,
    ShutdownConfig,
)
from lsprelay.errors import ConfigError
from lsprelay.workspace import WorkspaceDescriptor, load_workspaces, parse_workspaces

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("lsprelay.config")

DEFAULT_CONFIG_NAMES = ("lsprelay.yaml", ".lsprelay.yaml", "lsprelay.yml", ".lsprelay.yml")


def find_config_file(directory: Path | None = None) -> Path | None:
    """Return the first default config file present in ``directory``."""
    base = directory or Path.cwd()
    for name in DEFAULT_CONFIG_NAMES:
        candidate = base / name
        if candidate.exists():
            return candidate
    return None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from ``path``.

    Unlike optional user settings, an explicitly named config file that is
    broken is an error.

    Raises:
        ConfigError: If the file cannot be read, is not YAML, or is not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables.

    LSPRELAY_LOG sets the log file, LSPRELAY_HOST / LSPRELAY_PORT set the
    address for both server and client.
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("LSPRELAY_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    host = os.environ.get("LSPRELAY_HOST")
    if host:
        for section in ("server", "client"):
            overrides.setdefault(section, {})["host"] = host

    port = os.environ.get("LSPRELAY_PORT")
    if port:
        for section in ("server", "client"):
            overrides.setdefault(section, {})["port"] = port

    return overrides


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base`` one section deep."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return value


def _port(value: Any, section: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{section}.port must be an integer, got {value!r}") from e
    if not 0 <= port <= 65535:
        raise ConfigError(f"{section}.port out of range: {port}")
    return port


def _float(value: Any, name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"shutdown.{name} must be a number, got {value!r}") from e
    if result < 0:
        raise ConfigError(f"shutdown.{name} must not be negative")
    return result


def dict_to_config(data: dict[str, Any], *, base_dir: Path | None = None) -> Config:
    """Convert a merged dict to the typed Config dataclass.

    Args:
        data: Merged configuration dictionary.
        base_dir: Directory that relative paths in the file are resolved against.

    Raises:
        ConfigError: If a value has the wrong type.
    """
    server_data = _section(data, "server")
    server = ServerConfig(
        host=str(server_data.get("host", DEFAULT_HOST)),
        port=_port(server_data.get("port", DEFAULT_PORT), "server"),
    )

    client_data = _section(data, "client")
    workspaces_file = client_data.get("workspaces_file")
    if workspaces_file:
        workspaces_file = Path(os.path.expanduser(str(workspaces_file)))
        if base_dir and not workspaces_file.is_absolute():
            workspaces_file = base_dir / workspaces_file
    client = ClientConfig(
        host=str(client_data.get("host", DEFAULT_HOST)),
        port=_port(client_data.get("port", DEFAULT_PORT), "client"),
        workspaces_file=workspaces_file or None,
    )

    logging_data = _section(data, "logging")
    verbose = logging_data.get("verbose")
    if verbose is not None:
        try:
            verbose = int(verbose)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"logging.verbose must be an integer, got {verbose!r}") from e
    logging_config = LoggingConfig(
        level=logging_data.get("level"),
        verbose=verbose,
        file=logging_data.get("file"),
    )

    shutdown_data = _section(data, "shutdown")
    defaults = ShutdownConfig()
    shutdown = ShutdownConfig(
        interrupt_timeout=_float(
            shutdown_data.get("interrupt_timeout", defaults.interrupt_timeout), "interrupt_timeout"
        ),
        terminate_timeout=_float(
            shutdown_data.get("terminate_timeout", defaults.terminate_timeout), "terminate_timeout"
        ),
        disconnect_grace=_float(
            shutdown_data.get("disconnect_grace", defaults.disconnect_grace), "disconnect_grace"
        ),
    )

    return Config(
        server=server,
        client=client,
        logging=logging_config,
        shutdown=shutdown,
        workspaces=parse_workspaces(data.get("workspaces"), source="workspaces"),
    )


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment.

    Priority (lowest to highest): defaults, config file, environment.
    CLI flags are applied on top by the caller.

    Args:
        config_path: Explicit config file. If None, a default file in the
            working directory is used when present.
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    path = config_path or find_config_file()
    data: dict[str, Any] = {}
    if path is not None:
        _log.debug("Loading config from %s", path)
        data = load_yaml_file(path)

    data = merge_configs(data, env_overrides())
    return dict_to_config(data, base_dir=path.parent if path else None)


def client_workspaces(config: Config) -> list[WorkspaceDescriptor]:
    """Workspace list for the client: the separate file if set, else the config section."""
    if config.client.workspaces_file is not None:
        return load_workspaces(config.client.workspaces_file)
    return list(config.workspaces)
