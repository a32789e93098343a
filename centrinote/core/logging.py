"""
Logging utilities for the FastAPI application and maintenance scripts.

Provides a consistent logging format and a helper for redacting secrets.
"""

import logging
import sys
from typing import Optional

_VISIBLE_PREFIX = 6


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def mask_secret(value: Optional[str], visible: int = _VISIBLE_PREFIX) -> str:
    """Return a truncated prefix of a code or token that is safe to log."""
    if not value:
        return "<none>"
    if len(value) <= visible:
        return "…"
    return f"{value[:visible]}…"


__all__ = ["configure_logging", "mask_secret"]
