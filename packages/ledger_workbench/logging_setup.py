"""Logging for ``ledger_workbench``.

Modules log through ``get_logger(__name__)`` and never add handlers. The CLI
calls ``configure_logging()`` once to send the package's records to stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ROOT_LOGGER = "ledger_workbench"
LEVEL_ENV_VAR = "LEDGER_WORKBENCH_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _WorkbenchHandler(logging.StreamHandler):
    pass


def resolve_level(level: int | str | None = None) -> int:
    """``20``, ``"20"``, ``"info"`` -> ``logging.INFO``; unknown names give INFO."""

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach one stream handler to the package logger; later calls are no-ops.

    ``level=None`` reads ``LEDGER_WORKBENCH_LOG_LEVEL``.
    """

    logger = logging.getLogger(ROOT_LOGGER)
    if any(isinstance(h, _WorkbenchHandler) for h in logger.handlers):
        return
    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    resolved = resolve_level(level)
    handler = _WorkbenchHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["DEFAULT_FORMAT", "LEVEL_ENV_VAR", "configure_logging", "get_logger", "resolve_level"]
