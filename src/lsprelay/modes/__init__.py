"""Operating modes for lsprelay."""

from lsprelay.modes.connect import run_client_mode
from lsprelay.modes.serve import run_server

__all__ = [
    "run_client_mode",
    "run_server",
]
