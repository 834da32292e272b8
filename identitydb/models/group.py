# identitydb/models/group.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from identitydb.database import Base
from identitydb.lifetime import now_utc_naive
from identitydb.models import user as _user_models  # noqa: F401  registers user_accounts for the foreign key


class GroupName(Base):
    __tablename__ = "group_names"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime, default=now_utc_naive, nullable=False)


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("group_names.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("user_accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )

    added: Mapped[datetime] = mapped_column(DateTime, default=now_utc_naive, nullable=False)
