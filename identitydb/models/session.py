# identitydb/models/session.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from identitydb.database import Base
from identitydb.lifetime import now_utc_naive
from identitydb.models import user as _user_models  # noqa: F401  registers user_accounts for the foreign key


class SessionToken(Base):
    __tablename__ = "session_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)

    session_token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    # NULL means an anonymous session
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("user_accounts.id", ondelete="SET NULL"), nullable=True
    )

    # NULL means never expires / never purged
    expires: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    renewal_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    renewable_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created: Mapped[datetime] = mapped_column(DateTime, default=now_utc_naive, nullable=False)
