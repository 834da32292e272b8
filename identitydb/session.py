# identitydb/session.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Callable, Optional, Tuple

from identitydb.config import SESSION_LIFETIME_DAYS, SESSION_RENEWAL_DAYS
from identitydb.database import Database
from identitydb.errors import (
    ExpiredSessionError,
    InvalidSessionError,
    ProgramError,
    SessionRenewalError,
)
from identitydb.lifetime import Lifetime, LifetimeLike, now_utc_naive
from identitydb.migrations import session_0001_session_tokens
from identitydb.models.session import SessionToken
from identitydb.schema import Schema

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# 160 bits, rendered as 40 hex characters
TOKEN_BYTES = 20

DEFAULT_LIFETIME = Lifetime(days=SESSION_LIFETIME_DAYS)
DEFAULT_RENEWAL_PERIOD = Lifetime(days=SESSION_RENEWAL_DAYS)


def generate_token(byte_count: int = TOKEN_BYTES) -> str:
    return secrets.token_hex(byte_count)


def _elapsed(moment: Optional[datetime], now: datetime) -> bool:
    # A moment equal to now has already elapsed; NULL never elapses.
    return moment is not None and moment <= now


def _window(
    now: datetime,
    lifetime: Optional[LifetimeLike],
    renewal_period: Optional[LifetimeLike],
) -> Tuple[datetime, datetime]:
    life = Lifetime.coerce(lifetime) if lifetime is not None else DEFAULT_LIFETIME
    renewal = Lifetime.coerce(renewal_period) if renewal_period is not None else DEFAULT_RENEWAL_PERIOD

    expires = life.after(now)
    renewable_until = renewal.after(expires)
    return expires, renewable_until


class SessionAdmin:
    """
    Issues, opens, renews and purges sessions stored in `session_tokens`.

    The table is created by `schema.build()`; the user schema has to be built
    first because sessions reference `user_accounts`.
    """

    def __init__(self, db: Database, clock: Clock = now_utc_naive) -> None:
        self.db = db
        self.clock = clock
        self.schema = Schema(db, "session_schema", [session_0001_session_tokens])

    def _handle(self, row) -> Session:
        return Session(
            self.db,
            self.clock,
            id=row.id,
            token=row.session_token,
            user_id=row.user_id,
            expires=row.expires,
            renewal_token=row.renewal_token,
            renewable_until=row.renewable_until,
            created=row.created,
        )

    def create(
        self,
        lifetime: Optional[LifetimeLike] = None,
        renewal_period: Optional[LifetimeLike] = None,
        *,
        expires: bool = True,
    ) -> Session:
        """
        Start an anonymous session.

        `expires=False` creates a session that never expires and is never
        purged. A non-positive `lifetime` yields an already expired session.
        """
        now = self.clock()

        if expires:
            expires_at, renewable_until = _window(now, lifetime, renewal_period)
        else:
            expires_at, renewable_until = None, None

        with self.db.session() as db:
            row = SessionToken(
                session_token=generate_token(),
                user_id=None,
                expires=expires_at,
                renewal_token=generate_token(),
                renewable_until=renewable_until,
                created=now,
            )
            db.add(row)
            db.flush()
            session = self._handle(row)

        logger.debug("Created session %d (expires %s)", session.id, expires_at)
        return session

    def open(self, token: str) -> Session:
        with self.db.session() as db:
            row = (
                db.query(SessionToken)
                .filter(SessionToken.session_token == token)
                .populate_existing()
                .first()
            )

            if row is None:
                raise InvalidSessionError("Failed to open session: Invalid token.")

            if _elapsed(row.expires, self.clock()):
                raise ExpiredSessionError("Failed to open session: The session has expired.")

            return self._handle(row)

    def get(self, session_id: int) -> Session:
        """Fetch a session by id without checking its expiration."""
        with self.db.session() as db:
            row = (
                db.query(SessionToken)
                .filter(SessionToken.id == session_id)
                .populate_existing()
                .first()
            )

            if row is None:
                raise InvalidSessionError(f"Failed to get session {session_id}: No such session.")

            return self._handle(row)

    def renew(
        self,
        token: str,
        lifetime: Optional[LifetimeLike],
        renewal_token: str,
        renewal_period: Optional[LifetimeLike] = None,
    ) -> Session:
        """
        Replace both tokens of a session and restart its lifetime.

        The session may already be expired; only the renewal window matters.
        """
        if not token or not renewal_token:
            raise SessionRenewalError("Session renewal failed: Missing session or renewal token.")

        now = self.clock()

        with self.db.session() as db:
            row = (
                db.query(
                    SessionToken.id,
                    SessionToken.user_id,
                    SessionToken.renewable_until,
                    SessionToken.created,
                )
                .filter(
                    SessionToken.session_token == token,
                    SessionToken.renewal_token == renewal_token,
                )
                .first()
            )

            if row is None:
                raise SessionRenewalError(
                    "Session renewal failed: Could not find matching session and renewal token."
                )

            if _elapsed(row.renewable_until, now):
                raise SessionRenewalError("Session renewal failed: Renewal period has expired.")

            expires, renewable_until = _window(now, lifetime, renewal_period)
            new_token = generate_token()
            new_renewal_token = generate_token()

            # Matching on the old tokens makes a concurrent second renewal miss
            updated = (
                db.query(SessionToken)
                .filter(
                    SessionToken.id == row.id,
                    SessionToken.session_token == token,
                    SessionToken.renewal_token == renewal_token,
                )
                .update(
                    {
                        SessionToken.session_token: new_token,
                        SessionToken.expires: expires,
                        SessionToken.renewal_token: new_renewal_token,
                        SessionToken.renewable_until: renewable_until,
                    }
                )
            )

            if updated != 1:
                raise SessionRenewalError("Session renewal failed: The session was renewed concurrently.")

        logger.debug("Renewed session %d", row.id)

        return Session(
            self.db,
            self.clock,
            id=row.id,
            token=new_token,
            user_id=row.user_id,
            expires=expires,
            renewal_token=new_renewal_token,
            renewable_until=renewable_until,
            created=row.created,
        )

    def purge(self) -> int:
        """Delete every session whose renewal window has elapsed."""
        now = self.clock()

        with self.db.session() as db:
            deleted = (
                db.query(SessionToken)
                .filter(SessionToken.renewable_until <= now)
                .delete(synchronize_session="fetch")
            )

        if deleted:
            logger.info("Purged %d unrenewable sessions", deleted)
        return deleted


class Session:
    """
    Snapshot of a session row at the time it was read or last changed
    through this handle. Open the token again to see changes made elsewhere.
    """

    def __init__(
        self,
        db: Database,
        clock: Clock,
        *,
        id: int,
        token: str,
        user_id: Optional[int],
        expires: Optional[datetime],
        renewal_token: Optional[str],
        renewable_until: Optional[datetime],
        created: Optional[datetime] = None,
    ) -> None:
        self._db = db
        self._clock = clock
        self._id = id
        self._token = token
        self._user_id = user_id
        self._expires = expires
        self._renewal_token = renewal_token
        self._renewable_until = renewable_until
        self._created = created
        self._destroyed = False

    def __repr__(self) -> str:
        return f"<Session id={self._id} user_id={self._user_id} expires={self._expires}>"

    @property
    def id(self) -> int:
        return self._id

    @property
    def token(self) -> str:
        return self._token

    @property
    def user_id(self) -> Optional[int]:
        return self._user_id

    @property
    def expires(self) -> Optional[datetime]:
        return self._expires

    @property
    def renewal_token(self) -> Optional[str]:
        return self._renewal_token

    @property
    def renewable_until(self) -> Optional[datetime]:
        return self._renewable_until

    @property
    def created(self) -> Optional[datetime]:
        return self._created

    def is_expired(self) -> bool:
        return _elapsed(self._expires, self._clock())

    def _require_alive(self, action: str) -> None:
        if self._destroyed:
            raise ProgramError(f"Cannot {action}: session {self._id} was destroyed through this handle.")

    def destroy(self) -> None:
        self._require_alive("destroy session")

        with self._db.session() as db:
            db.query(SessionToken).filter(SessionToken.id == self._id).delete()

        self._destroyed = True
        logger.debug("Destroyed session %d", self._id)

    def set_user_id(self, user_id: int) -> None:
        self._require_alive("set user id")

        with self._db.session() as db:
            db.query(SessionToken).filter(SessionToken.id == self._id).update(
                {SessionToken.user_id: user_id}
            )

        self._user_id = user_id

    def discard_user_id(self) -> None:
        self._require_alive("discard user id")

        with self._db.session() as db:
            db.query(SessionToken).filter(SessionToken.id == self._id).update(
                {SessionToken.user_id: None}
            )

        self._user_id = None

    def update_lifetime(
        self,
        lifetime: LifetimeLike,
        renewal_period: Optional[LifetimeLike] = None,
    ) -> None:
        """Restart the lifetime from now; repeated calls do not add up."""
        self._require_alive("update lifetime")

        expires, renewable_until = _window(self._clock(), lifetime, renewal_period)

        with self._db.session() as db:
            db.query(SessionToken).filter(SessionToken.id == self._id).update(
                {
                    SessionToken.expires: expires,
                    SessionToken.renewable_until: renewable_until,
                }
            )

        self._expires = expires
        self._renewable_until = renewable_until
