"""
Declarative base with per-model schema operations.

Models that carry ``auto_migrate`` / ``auto_upgrade`` are "migratable";
versioning forwards both operations to the derived history table.
"""

from __future__ import annotations

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.schema import CreateColumn

logger = structlog.get_logger()


class MigratableModel:
    """Mixin giving a mapped class schema operations on its own table."""

    @classmethod
    def auto_migrate(cls, engine: Engine) -> None:
        """Drop and recreate the table. Existing rows are lost."""
        table = cls.__table__  # type: ignore[attr-defined]
        table.drop(engine, checkfirst=True)
        table.create(engine)
        logger.info("table_migrated", table=table.name)

    @classmethod
    def auto_upgrade(cls, engine: Engine) -> None:
        """Create the table if missing, otherwise add the columns it lacks."""
        table = cls.__table__  # type: ignore[attr-defined]
        inspector = inspect(engine)
        if not inspector.has_table(table.name, schema=table.schema):
            table.create(engine)
            logger.info("table_created", table=table.name)
            return

        existing = {
            col["name"] for col in inspector.get_columns(table.name, schema=table.schema)
        }
        missing = [col for col in table.columns if col.name not in existing]
        if not missing:
            return

        preparer = engine.dialect.identifier_preparer
        with engine.begin() as conn:
            for column in missing:
                spec = CreateColumn(column).compile(dialect=engine.dialect)
                conn.execute(
                    text(f"ALTER TABLE {preparer.format_table(table)} ADD COLUMN {spec}")
                )
        logger.info(
            "table_upgraded", table=table.name, added=[col.name for col in missing]
        )


Base = declarative_base(cls=MigratableModel)
