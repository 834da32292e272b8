# identitydb/schema.py
from __future__ import annotations

import logging
from typing import Protocol, Sequence

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.orm import Session

from identitydb.database import Database

logger = logging.getLogger(__name__)


class Migration(Protocol):
    """
    One reversible schema step. Any object with these two callables works,
    including a plain module.
    """

    def upgrade(self, op: Operations) -> None: ...

    def downgrade(self, op: Operations) -> None: ...


class Schema:
    """
    Applies an ordered list of migrations and records how many have been
    applied in a single-row table named `migration_table`.
    """

    def __init__(self, db: Database, migration_table: str, migrations: Sequence[Migration]) -> None:
        self.db = db
        self.migration_table = migration_table
        self.migrations = list(migrations)
        self._cursor = sa.table(migration_table, sa.column("migration_number", sa.Integer))

    # ----------------------------
    # Cursor
    # ----------------------------

    def _create_migration_table(self, db: Session) -> None:
        self._operations(db).create_table(
            self.migration_table,
            sa.Column("migration_number", sa.Integer(), nullable=False),
            sa.CheckConstraint("migration_number >= 0", name=f"ck_{self.migration_table}_migration_number"),
        )
        logger.info("Created migration table %s", self.migration_table)

    def _read_cursor(self, db: Session) -> int:
        if not sa.inspect(db.connection()).has_table(self.migration_table):
            self._create_migration_table(db)

        number = db.execute(sa.select(self._cursor.c.migration_number)).scalar_one_or_none()
        if number is None:
            db.execute(sa.insert(self._cursor).values(migration_number=0))
            return 0
        return int(number)

    def _write_cursor(self, db: Session, number: int) -> None:
        db.execute(sa.update(self._cursor).values(migration_number=number))

    def _operations(self, db: Session) -> Operations:
        return Operations(MigrationContext.configure(db.connection()))

    def current_migration_number(self) -> int:
        with self.db.session() as db:
            return self._read_cursor(db)

    # ----------------------------
    # Steps
    # ----------------------------

    def up(self) -> bool:
        """Apply the next migration. Returns False when already at the latest one."""
        with self.db.session() as db:
            number = self._read_cursor(db)
            if number >= len(self.migrations):
                return False

            self.migrations[number].upgrade(self._operations(db))
            # Only advance once the migration body succeeded
            self._write_cursor(db, number + 1)

        logger.info("%s: applied migration %d", self.migration_table, number + 1)
        return True

    def down(self) -> bool:
        """Revert the last applied migration. Returns False at migration 0."""
        with self.db.session() as db:
            number = self._read_cursor(db)
            if number <= 0:
                return False
            if number > len(self.migrations):
                logger.warning(
                    "%s is at migration %d but only %d migrations are known; not reverting",
                    self.migration_table,
                    number,
                    len(self.migrations),
                )
                return False

            self.migrations[number - 1].downgrade(self._operations(db))
            self._write_cursor(db, number - 1)

        logger.info("%s: reverted migration %d", self.migration_table, number)
        return True

    def build(self) -> None:
        while self.up():
            pass

    def teardown(self) -> None:
        while self.down():
            pass
