# identitydb/user.py
from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional, Union

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError

from identitydb.database import Database, is_unique_violation
from identitydb.errors import (
    InvalidSessionError,
    ProgramError,
    UserAuthenticationError,
    UserExistsError,
    UserInvalidError,
)
from identitydb.migrations import user_0001_user_accounts, user_0002_user_data
from identitydb.models.group import GroupMember, GroupName
from identitydb.models.user import UserAccount, UserData
from identitydb.schema import Schema
from identitydb.session import Session

logger = logging.getLogger(__name__)

# Pi-friendly hashing (no native deps)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ItemValue = Union[str, int, float, bool]


def _encode_item(value: ItemValue) -> tuple[str, str]:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return ("true" if value else "false"), "boolean"
    if isinstance(value, (int, float)):
        return str(value), "number"
    if isinstance(value, str):
        return value, "string"
    raise ProgramError(f"Unsupported user data value {value!r}: expected str, int, float or bool.")


def _decode_item(value: str, kind: str) -> ItemValue:
    if kind == "boolean":
        return value == "true"
    if kind == "number":
        try:
            return int(value)
        except ValueError:
            return float(value)
    return value


class UserAdmin:
    def __init__(self, db: Database) -> None:
        self.db = db
        self.schema = Schema(db, "user_schema", [user_0001_user_accounts, user_0002_user_data])

    def _groups_of(self, db, user_id: int) -> List[str]:
        rows = (
            db.query(GroupName.name)
            .join(GroupMember, GroupMember.group_id == GroupName.id)
            .filter(GroupMember.user_id == user_id)
            .order_by(GroupName.name.asc())
            .all()
        )
        return [r.name for r in rows]

    def _account_id(self, db, username: str) -> Optional[int]:
        row = db.query(UserAccount.id).filter(UserAccount.username == username).first()
        return row.id if row is not None else None

    def exists(self, username: str) -> bool:
        with self.db.session() as db:
            return self._account_id(db, username) is not None

    def create(self, username: str) -> User:
        taken = f"Failed to create user '{username}': A user with that name already exists."

        with self.db.session() as db:
            if self._account_id(db, username) is not None:
                raise UserExistsError(taken)

            account = UserAccount(username=username, password=None)
            db.add(account)
            try:
                db.flush()
            except IntegrityError as e:
                # Another writer inserted the same name after the check above
                if is_unique_violation(e):
                    raise UserExistsError(taken) from e
                raise
            user_id = account.id

        logger.info("Created user %s (%d)", username, user_id)
        return User(self.db, user_id, username, authenticated=False, groups=[])

    def get(self, username: str) -> User:
        with self.db.session() as db:
            user_id = self._account_id(db, username)
            if user_id is None:
                raise UserInvalidError(f"Failed to get user '{username}': No such user.")

            return User(self.db, user_id, username, authenticated=False, groups=self._groups_of(db, user_id))

    def from_session(self, session: Session) -> User:
        """The user logged in with `session`, marked as authenticated."""
        user_id = session.user_id

        if user_id is None:
            raise UserAuthenticationError(
                "Failed to get user from session: There is no user authenticated with the session provided."
            )

        with self.db.session() as db:
            row = db.query(UserAccount.username).filter(UserAccount.id == user_id).first()
            if row is None:
                raise UserInvalidError(f"Failed to get user with id '{user_id}' from session: No such user.")

            return User(self.db, user_id, row.username, authenticated=True, groups=self._groups_of(db, user_id))

    def remove(self, username: str) -> None:
        with self.db.session() as db:
            deleted = db.query(UserAccount).filter(UserAccount.username == username).delete()
            if not deleted:
                raise UserInvalidError(f"Failed to remove user '{username}': No such user.")

        logger.info("Removed user %s", username)


class User:
    def __init__(
        self,
        db: Database,
        id: int,
        username: str,
        authenticated: bool = False,
        groups: Iterable[str] = (),
    ) -> None:
        self._db = db
        self._id = id
        self._username = username
        self._authenticated = authenticated
        self._groups = list(groups)

    def __repr__(self) -> str:
        return f"<User id={self._id} username={self._username!r}>"

    @property
    def id(self) -> int:
        return self._id

    @property
    def username(self) -> str:
        return self._username

    @property
    def groups(self) -> List[str]:
        """Group names as of when this user was loaded."""
        return list(self._groups)

    # ----------------------------
    # Authentication
    # ----------------------------

    def set_password(self, password: str) -> None:
        hashed = pwd_context.hash(password)
        with self._db.session() as db:
            db.query(UserAccount).filter(UserAccount.id == self._id).update({UserAccount.password: hashed})

    def verify_password(self, password: str) -> bool:
        with self._db.session() as db:
            row = db.query(UserAccount.password).filter(UserAccount.id == self._id).first()

        if row is None:
            raise UserInvalidError(
                f"Failed to verify password: User '{self._username}' with id '{self._id}' does not exist."
            )

        if row.password is None:
            return False

        return pwd_context.verify(password, row.password)

    def authenticate(self, password: str) -> None:
        if not self.verify_password(password):
            raise UserAuthenticationError(f"Failed to authenticate user '{self._username}': Wrong password.")

        self._authenticated = True

    def is_authenticated(self) -> bool:
        return self._authenticated

    def require_authentication(self) -> None:
        if not self._authenticated:
            raise UserAuthenticationError("Action aborted: User is not authenticated.")

    def login(self, session: Session, password: str) -> None:
        self.authenticate(password)
        session.set_user_id(self._id)
        logger.info("User %s logged in with session %d", self._username, session.id)

    def logout(self, session: Session) -> None:
        if not self._authenticated:
            raise UserAuthenticationError(f"Cannot log out user '{self._username}': Not authenticated.")

        if session.user_id != self._id:
            raise InvalidSessionError(
                f"Cannot log user '{self._username}' out of session: "
                "The user is not logged in with the session provided."
            )

        session.discard_user_id()
        self._authenticated = False

    # ----------------------------
    # Key/value data
    # ----------------------------

    def set_items(self, data: Mapping[str, ItemValue]) -> None:
        encoded = {key: _encode_item(value) for key, value in data.items()}

        # One session block, so all keys are replaced in one transaction
        with self._db.session() as db:
            for key, (value, kind) in encoded.items():
                db.query(UserData).filter(UserData.user_id == self._id, UserData.key == key).delete()
                db.add(UserData(user_id=self._id, key=key, value=value, type=kind))
            db.flush()

    def remove_items(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return

        with self._db.session() as db:
            db.query(UserData).filter(UserData.user_id == self._id, UserData.key.in_(keys)).delete(
                synchronize_session=False
            )

    def get_items(self, keys: Iterable[str]) -> dict[str, ItemValue]:
        keys = list(keys)
        if not keys:
            return {}

        with self._db.session() as db:
            rows = (
                db.query(UserData.key, UserData.value, UserData.type)
                .filter(UserData.user_id == self._id, UserData.key.in_(keys))
                .all()
            )

        return {r.key: _decode_item(r.value, r.type) for r in rows}
