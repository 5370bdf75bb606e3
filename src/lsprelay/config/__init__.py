"""Configuration management for lsprelay.

YAML configuration with environment variable overrides:

    server:
      host: 0.0.0.0
      port: 3001
    client:
      host: devbox.internal
      port: 3001
      workspaces_file: ~/.config/lsprelay/workspaces.yaml
    logging:
      level: info
      file: /var/log/lsprelay.log
    shutdown:
      disconnect_grace: 2.0
    workspaces:
      - root: /home/me/src/project
        command: rust-analyzer
        args: []
"""

from lsprelay.config.loader import (
    client_workspaces,
    dict_to_config,
    env_overrides,
    find_config_file,
    load_config,
)
from lsprelay.config.schema import (
    ClientConfig,
    Config,
    LoggingConfig,
    ServerConfig,
    ShutdownConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "client_workspaces",
    "dict_to_config",
    "env_overrides",
    "find_config_file",
    # Schema types
    "ClientConfig",
    "LoggingConfig",
    "ServerConfig",
    "ShutdownConfig",
]
