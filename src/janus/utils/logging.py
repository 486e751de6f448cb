from __future__ import annotations

import logging

from janus.config.settings import get_settings

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_CONFIGURED = False


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging once; the level defaults to ``Settings.log_level``."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved: str | int = level if level is not None else get_settings().log_level
    if isinstance(resolved, str):
        resolved = resolved.strip().upper() or "INFO"
    logging.basicConfig(level=resolved, format=_DEFAULT_FORMAT)
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
