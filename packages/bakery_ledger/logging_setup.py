"""Logging for the ledger.

Level policy used across the package:

- ``WARNING``: a suppressed store failure. The missing ``(type, date)`` index
  on a live query or a stats call is logged here and never shown as a
  notification; so is a record that could not be read before a delete.
- ``ERROR``: a failed write (insert, delete, bulk delete) or a live query
  that failed for any other reason. These also reach the notification sink.
- ``INFO``: bulk delete counts and the notifications shown to the user.

``configure_logging`` is called once by the CLI. Library modules only call
``get_logger`` and never attach handlers of their own. Setting
``BAKERY_LEDGER_LOG_SQL`` (or passing ``log_sql=True``) routes the statements
SQLAlchemy emits through the same handler, which is how a slow window query
or a batched delete is inspected from the command line.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "bakery_ledger"
_SQL_LOGGER_NAME = "sqlalchemy.engine"
_LEVEL_ENV = "BAKERY_LEDGER_LOG_LEVEL"
_SQL_ENV = "BAKERY_LEDGER_LOG_SQL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        return logging.getLevelNamesMapping().get(name, logging.INFO)
    env_val = os.getenv(_LEVEL_ENV)
    if env_val:
        return _parse_level(env_val)
    return logging.INFO


def _sql_requested(log_sql: bool | None) -> bool:
    if log_sql is not None:
        return log_sql
    return os.getenv(_SQL_ENV, "").strip().lower() in _TRUTHY


def configure_logging(
    level: int | str | None = None,
    *,
    log_sql: bool | None = None,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach one stream handler to the ``bakery_ledger`` logger, once.

    ``level`` falls back to ``BAKERY_LEDGER_LOG_LEVEL`` and then ``INFO``.
    ``log_sql`` falls back to ``BAKERY_LEDGER_LOG_SQL``; when on, the
    ``sqlalchemy.engine`` logger shares the handler at ``INFO`` so statements
    and their parameters are printed regardless of the package level.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)
    logger.setLevel(_parse_level(level))
    logger.addHandler(handler)
    logger.propagate = False

    if _sql_requested(log_sql):
        sql_logger = logging.getLogger(_SQL_LOGGER_NAME)
        sql_logger.setLevel(logging.INFO)
        sql_logger.addHandler(handler)
        sql_logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
