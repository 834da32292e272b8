# identitydb/lifetime.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from identitydb.errors import ProgramError

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR
MS_PER_WEEK = 7 * MS_PER_DAY
# Calendar approximations
MS_PER_MONTH = 30.5 * MS_PER_DAY
MS_PER_YEAR = 365 * MS_PER_DAY


def now_utc_naive() -> datetime:
    # Naive UTC datetime (no tzinfo). Works cleanly with SQLite.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Lifetime(BaseModel):
    """
    A composite duration. Every unit defaults to 0 and may be negative,
    which yields a point in the past.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    years: float = 0
    months: float = 0
    weeks: float = 0
    days: float = 0
    hours: float = 0
    minutes: float = 0
    seconds: float = 0
    milliseconds: float = 0

    def to_milliseconds(self) -> float:
        return (
            self.milliseconds
            + self.seconds * MS_PER_SECOND
            + self.minutes * MS_PER_MINUTE
            + self.hours * MS_PER_HOUR
            + self.days * MS_PER_DAY
            + self.weeks * MS_PER_WEEK
            + self.months * MS_PER_MONTH
            + self.years * MS_PER_YEAR
        )

    def to_timedelta(self) -> timedelta:
        try:
            return timedelta(milliseconds=self.to_milliseconds())
        except OverflowError as e:
            raise ProgramError(f"Lifetime {self!r} is too large.") from e

    def after(self, moment: datetime) -> datetime:
        """`moment` shifted by this lifetime."""
        delta = self.to_timedelta()
        try:
            return moment + delta
        except OverflowError as e:
            raise ProgramError(f"Lifetime {self!r} reaches past the supported date range.") from e

    @classmethod
    def coerce(cls, value: LifetimeLike) -> Lifetime:
        if isinstance(value, Lifetime):
            return value
        if isinstance(value, Mapping):
            try:
                return cls.model_validate(dict(value))
            except ValidationError as e:
                raise ProgramError(f"Invalid lifetime {dict(value)!r}: {e}") from e
        raise ProgramError(f"Expected a Lifetime or a mapping of units, got {type(value).__name__}.")


LifetimeLike = Union[Lifetime, Mapping[str, Any]]
