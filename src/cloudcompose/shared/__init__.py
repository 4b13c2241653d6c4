"""Shared modules for cloudcompose.

Logging setup and on-disk paths used by the CLI and the compose engine.
"""

from .logging import configure_logging, get_logger
from .paths import CLOUDCOMPOSE_DIR, PROJECTS_DIR

__all__ = [
    # Paths
    "CLOUDCOMPOSE_DIR",
    "PROJECTS_DIR",
    # Logging
    "configure_logging",
    "get_logger",
]
