# identitydb/models/user.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from identitydb.database import Base
from identitydb.lifetime import now_utc_naive


class UserAccount(Base):
    __tablename__ = "user_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)

    username: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    # passlib hash, NULL until a password is set
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created: Mapped[datetime] = mapped_column(DateTime, default=now_utc_naive, nullable=False)


class UserData(Base):
    __tablename__ = "user_data"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("user_accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )

    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)

    # string | number | boolean
    type: Mapped[str] = mapped_column(String(7), nullable=False)
