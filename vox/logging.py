"""
vox.logging - Centralized logging configuration.

Every component logs through a child of the ``vox`` logger so a single
call to configure_logging controls the whole package.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("vox")


def get_logger(component: str) -> logging.Logger:
    """Return the logger for a component, e.g. ``vox.extract``."""
    return logger.getChild(component)


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the vox package.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: [%(name)s] %(message)s",
    )
    logger.setLevel(level)
