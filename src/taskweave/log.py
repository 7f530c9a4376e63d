from __future__ import annotations

import logging

from .config import LOG_LEVEL

_configured = False


def configure(debug: bool = False) -> None:
    global _configured
    level = logging.DEBUG if debug else getattr(logging, LOG_LEVEL.upper(), logging.WARNING)
    if _configured:
        logging.getLogger("taskweave").setLevel(level)
        return
    logging.basicConfig(format="%(name)s | %(levelname)s | %(message)s")
    logging.getLogger("taskweave").setLevel(level)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    if not _configured:
        configure()
    return logging.getLogger(name)
