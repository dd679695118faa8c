"""Schema bootstrap outside Alembic (local SQLite files, tests, ``init-db``).

Production databases are migrated with Alembic (``libs/db/alembic``); these
helpers create the same end state directly from the ORM metadata.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from .models.ledger import TYPE_DATE_INDEX, Base, LedgerTransaction


def create_type_date_index(engine: Engine) -> None:
    """Create the composite ``(type, date)`` index (mirrors migration 0002)."""

    table = LedgerTransaction.__tablename__
    with engine.begin() as conn:
        conn.exec_driver_sql(
            f"CREATE INDEX IF NOT EXISTS {TYPE_DATE_INDEX} ON {table} (type, date)"
        )


def create_schema(engine: Engine, *, with_type_date_index: bool = True) -> None:
    """Create the ledger table and, unless told otherwise, the composite index."""

    Base.metadata.create_all(bind=engine)
    if with_type_date_index:
        create_type_date_index(engine)


__all__ = ["create_schema", "create_type_date_index"]
