from __future__ import annotations

import logging
import sys
from pathlib import Path

PACKAGE_LOGGER = "devloop"

_DEVLOOP_HANDLER: logging.Handler | None = None


def _level_from_name(name: str | int) -> int:
    if isinstance(name, int):
        return name
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(*, level: str | int | None = None, log_path: Path | str | None = None) -> logging.Logger:
    """Route the ``devloop`` logger to stderr, or to ``log_path`` when given.

    Idempotent per-process: the handler installed by a previous call is
    replaced, never duplicated. The root logger is left untouched so the host
    tool keeps control of its own output. ``level`` defaults to the
    ``logging.level`` configuration value.
    """
    global _DEVLOOP_HANDLER

    if level is None:
        from .config import get_logging_config

        level = get_logging_config()["level"]
    resolved_level = _level_from_name(level)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(resolved_level)

    if _DEVLOOP_HANDLER is not None:
        logger.removeHandler(_DEVLOOP_HANDLER)
        _DEVLOOP_HANDLER.close()
        _DEVLOOP_HANDLER = None

    handler: logging.Handler
    if log_path is not None:
        resolved = Path(log_path).resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(resolved, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)

    _DEVLOOP_HANDLER = handler
    return logger


def reset_logging_for_tests() -> None:
    """Test-only: remove the handler installed by :func:`configure_logging`."""
    global _DEVLOOP_HANDLER
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _DEVLOOP_HANDLER is not None:
        logger.removeHandler(_DEVLOOP_HANDLER)
        _DEVLOOP_HANDLER.close()
    _DEVLOOP_HANDLER = None
    logger.setLevel(logging.NOTSET)


__all__ = ["configure_logging", "reset_logging_for_tests"]
