"""
Logging setup for the discount service.

One module-level logger per module (``logging.getLogger(__name__)``); this
function only configures the root handler and format once per process.
"""
from __future__ import annotations
from typing import Optional
import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure root logging from LOG_LEVEL (default INFO)."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric = getattr(logging, level_name, None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level_name}")

    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)
    return logging.getLogger("discounts")
