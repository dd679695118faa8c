"""Pytest configuration for test isolation.

Two pieces of process-wide state leak between tests unless reset:

- ``db.client`` caches one engine per process and refuses a second, different
  ``DATABASE_URL``; every test gets a fresh slate via ``dispose_engine()``.
- ``bakery_ledger.logging_setup`` configures the package logger once. The CLI
  tests trigger that configuration with a stream that is closed afterwards, so
  the handler is removed again (also from ``sqlalchemy.engine`` when SQL
  echo was on) and the "configured" flag cleared.

Environment variables the application reads are cleared so a developer's
local ``.env`` or shell cannot change test outcomes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from bakery_ledger import logging_setup
from db.client import dispose_engine

_APP_ENV_VARS = (
    "DATABASE_URL",
    "BAKERY_LEDGER_LOG_LEVEL",
    "BAKERY_LEDGER_LOG_SQL",
    "BAKERY_LEDGER_DELETE_BATCH_SIZE",
)


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _APP_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    dispose_engine()
    yield
    dispose_engine()
    for name in ("bakery_ledger", "sqlalchemy.engine"):
        logger = logging.getLogger(name)
        for h in list(logger.handlers):
            logger.removeHandler(h)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
    logging_setup._CONFIGURED = False
