"""Root pytest configuration for all tests."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from lsprelay.config.schema import ShutdownConfig
from lsprelay.workspace import WorkspaceDescriptor

PYTHON = sys.executable
BACKENDS = Path(__file__).parent / "backends"


@pytest.fixture
def backend(tmp_path: Path) -> Callable[[str], WorkspaceDescriptor]:
    """Build a descriptor that runs one of the scripts in tests/backends."""

    def _backend(name: str) -> WorkspaceDescriptor:
        return WorkspaceDescriptor(
            root=str(tmp_path),
            command=PYTHON,
            args=[str(BACKENDS / f"{name}.py")],
        )

    return _backend


@pytest.fixture
def fast_shutdown() -> ShutdownConfig:
    """Short timeouts so disconnect tests finish quickly."""
    return ShutdownConfig(interrupt_timeout=1.0, terminate_timeout=1.0, disconnect_grace=0.3)
