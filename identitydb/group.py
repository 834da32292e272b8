# identitydb/group.py
from __future__ import annotations

import logging
from typing import List

from sqlalchemy.exc import IntegrityError

from identitydb.database import Database, is_unique_violation
from identitydb.errors import (
    GroupExistsError,
    GroupHasMemberError,
    GroupInvalidError,
    GroupNotAMemberError,
)
from identitydb.migrations import group_0001_group_names, group_0002_group_members
from identitydb.models.group import GroupMember, GroupName
from identitydb.models.user import UserAccount
from identitydb.schema import Schema
from identitydb.user import User

logger = logging.getLogger(__name__)


class GroupAdmin:
    def __init__(self, db: Database) -> None:
        self.db = db
        self.schema = Schema(db, "group_schema", [group_0001_group_names, group_0002_group_members])

    def exists(self, name: str) -> bool:
        with self.db.session() as db:
            return db.query(GroupName.id).filter(GroupName.name == name).first() is not None

    def create(self, name: str) -> Group:
        taken = f"Failed to create group: Group with name '{name}' already exists."

        with self.db.session() as db:
            if db.query(GroupName.id).filter(GroupName.name == name).first():
                raise GroupExistsError(taken)

            group = GroupName(name=name)
            db.add(group)
            try:
                db.flush()
            except IntegrityError as e:
                if is_unique_violation(e):
                    raise GroupExistsError(taken) from e
                raise
            group_id = group.id

        logger.info("Created group %s (%d)", name, group_id)
        return Group(self.db, group_id, name)

    def get(self, name: str) -> Group:
        with self.db.session() as db:
            row = db.query(GroupName.id, GroupName.name).filter(GroupName.name == name).first()

        if row is None:
            raise GroupInvalidError(f"Failed to get group '{name}': No group with that name exists.")

        return Group(self.db, row.id, row.name)

    def remove(self, name: str) -> None:
        with self.db.session() as db:
            deleted = db.query(GroupName).filter(GroupName.name == name).delete()
            if not deleted:
                raise GroupInvalidError(f"Failed to remove group '{name}': No group with that name exists.")

        logger.info("Removed group %s", name)

    def list(self, offset: int = 0, count: int = 100) -> List[str]:
        with self.db.session() as db:
            rows = db.query(GroupName.name).order_by(GroupName.name.asc()).offset(offset).limit(count).all()
        return [r.name for r in rows]


class Group:
    def __init__(self, db: Database, id: int, name: str) -> None:
        self._db = db
        self._id = id
        self._name = name

    def __repr__(self) -> str:
        return f"<Group id={self._id} name={self._name!r}>"

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    def has_member(self, user: User) -> bool:
        with self._db.session() as db:
            row = (
                db.query(GroupMember.id)
                .filter(GroupMember.group_id == self._id, GroupMember.user_id == user.id)
                .first()
            )
        return row is not None

    def add_member(self, user: User) -> None:
        already = f"Failed to add user '{user.username}' to group '{self._name}': User already in group."

        if self.has_member(user):
            raise GroupHasMemberError(already)

        with self._db.session() as db:
            db.add(GroupMember(group_id=self._id, user_id=user.id))
            try:
                db.flush()
            except IntegrityError as e:
                # Added concurrently after the membership check
                if is_unique_violation(e):
                    raise GroupHasMemberError(already) from e
                raise

    def list_members(self) -> List[str]:
        with self._db.session() as db:
            rows = (
                db.query(UserAccount.username)
                .join(GroupMember, GroupMember.user_id == UserAccount.id)
                .filter(GroupMember.group_id == self._id)
                .order_by(UserAccount.username.asc())
                .all()
            )
        return [r.username for r in rows]

    def remove_member(self, user: User) -> None:
        with self._db.session() as db:
            deleted = (
                db.query(GroupMember)
                .filter(GroupMember.group_id == self._id, GroupMember.user_id == user.id)
                .delete()
            )
            if not deleted:
                raise GroupNotAMemberError(
                    f"Failed to remove user '{user.username}' from group '{self._name}': User not in group."
                )
