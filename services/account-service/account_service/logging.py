"""Process-wide logging setup."""

from __future__ import annotations

import logging

from .config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure root logging defaults for the service."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
