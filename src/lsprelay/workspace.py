"""Workspace descriptors and workspace resolution."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from lsprelay.errors import ConfigError


class WorkspaceDescriptor(BaseModel):
    """Which backend command to run for a workspace root.

    Sent by the client as the handshake record and decoded by the server.
    Immutable once constructed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    root: str
    command: str
    args: tuple[str, ...]

    @field_validator("command")
    @classmethod
    def check_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("command must not be empty")
        return v

    @field_validator("root")
    @classmethod
    def check_root(cls, v: str) -> str:
        if not v:
            raise ValueError("root must not be empty")
        return v

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict for the handshake record."""
        return {"root": self.root, "command": self.command, "args": list(self.args)}

    def argv(self) -> list[str]:
        return [self.command, *self.args]


def _parts(path: str) -> list[str]:
    # Lexical only: the roots may name directories on another host.
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return [p for p in normalized.split("/") if p not in ("", ".")]


def is_path_prefix(root: str, path: str) -> bool:
    """True if ``root`` is a whole-component prefix of ``path``.

    ``/a`` covers ``/a`` and ``/a/b`` but not ``/ab``.
    """
    if root.startswith("/") != path.replace("\\", "/").startswith("/"):
        return False
    root_parts = _parts(root)
    path_parts = _parts(path)
    return path_parts[: len(root_parts)] == root_parts


def resolve(
    current_path: str | Path,
    descriptors: Iterable[WorkspaceDescriptor],
) -> WorkspaceDescriptor | None:
    """Return the first descriptor whose root contains ``current_path``.

    Descriptors are tried in the given order and the first match wins, even
    when a later root is more specific. Configuration order is priority.

    Returns:
        The matching descriptor, or None if no root matches.
    """
    target = str(current_path)
    for descriptor in descriptors:
        if is_path_prefix(descriptor.root, target):
            return descriptor
    return None


def parse_workspaces(data: Any, *, source: str = "<config>") -> list[WorkspaceDescriptor]:
    """Validate a list of raw workspace mappings.

    Raises:
        ConfigError: If ``data`` is not a list or any entry is invalid.
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError(f"{source}: workspaces must be a list, got {type(data).__name__}")

    workspaces: list[WorkspaceDescriptor] = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigError(f"{source}: workspace #{index} must be a mapping")
        try:
            workspaces.append(WorkspaceDescriptor.model_validate(entry))
        except ValidationError as e:
            raise ConfigError(f"{source}: invalid workspace #{index}: {e}") from e
    return workspaces


def load_workspaces(path: Path) -> list[WorkspaceDescriptor]:
    """Load an ordered workspace list from a YAML file.

    The file holds a top-level list of ``{root, command, args}`` mappings.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read workspace file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    return parse_workspaces(data, source=str(path))
