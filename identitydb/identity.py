# identitydb/identity.py
from __future__ import annotations

import logging
from typing import Callable, TypeVar

from identitydb.config import DATABASE_URL
from identitydb.database import Database
from identitydb.errors import NestedAtomicOperationError
from identitydb.group import GroupAdmin
from identitydb.lifetime import now_utc_naive
from identitydb.session import Clock, SessionAdmin
from identitydb.user import UserAdmin

logger = logging.getLogger(__name__)

T = TypeVar("T")

AtomicOperationCallback = Callable[["Identity"], T]


class Identity:
    """
    Groups the session, user and group admins over one database handle.

    `atomic_operation` runs a callback against a second Identity whose admins
    all share a single transaction.
    """

    def __init__(self, db: Database, clock: Clock = now_utc_naive) -> None:
        self.db = db
        self.clock = clock
        self.session = SessionAdmin(db, clock=clock)
        self.user = UserAdmin(db)
        self.group = GroupAdmin(db)

    @classmethod
    def from_url(cls, url: str = DATABASE_URL, **kwargs) -> Identity:
        return cls(Database.from_url(url, **kwargs))

    def build(self) -> None:
        # Sessions and group members reference user_accounts
        self.user.schema.build()
        self.group.schema.build()
        self.session.schema.build()

    def teardown(self) -> None:
        self.session.schema.teardown()
        self.group.schema.teardown()
        self.user.schema.teardown()

    def atomic_operation(self, callback: AtomicOperationCallback[T]) -> T:
        """
        Run `callback(identity)` in one transaction. Any error rolls the whole
        transaction back and is re-raised unchanged.

        Objects obtained inside the callback must not be used after it returns.
        """
        if self.db.is_transaction:
            raise NestedAtomicOperationError("You are not allowed to nest atomic operations.")

        try:
            with self.db.transaction() as trx:
                return callback(Identity(trx, clock=self.clock))
        except Exception as e:
            logger.warning("Atomic operation rolled back after %s", type(e).__name__)
            raise
