"""
Calendar arithmetic shared by every planning component.

DESIGN DECISION: Adding months clamps to the last valid day of the
target month and is always computed from the original anchor date.
Jan 31 + 1 month is Feb 29 (leap year), + 2 months is Mar 31. Nothing in
the engine relies on calendar rollover into the following month.
"""

import calendar
from datetime import date

from pydantic import BaseModel, ConfigDict, Field


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> int:
    """Clamp day to the valid range for the given year/month."""
    return max(1, min(day, days_in_month(year, month)))


def add_months(anchor: date, months: int) -> date:
    """Add `months` calendar months to `anchor`, clamping the day."""
    index = anchor.month - 1 + months
    year = anchor.year + index // 12
    month = index % 12 + 1
    return date(year, month, clamp_day(year, month, anchor.day))


class MonthKey(BaseModel):
    """
    A calendar month, rendered as YYYY-MM.

    Hashable and ordered, so it can key accumulators and be sorted.
    """
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1, le=9999)
    month: int = Field(..., ge=1, le=12)

    @classmethod
    def of(cls, day: date) -> "MonthKey":
        return cls(year=day.year, month=day.month)

    @classmethod
    def parse(cls, value: str) -> "MonthKey":
        """Parse 'YYYY-MM'. Raises ValueError on anything else."""
        parts = value.strip().split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid month: {value!r} (expected YYYY-MM)")
        return cls(year=int(parts[0]), month=int(parts[1]))

    @classmethod
    def coerce(cls, value: "MonthKey | date | str") -> "MonthKey":
        if isinstance(value, MonthKey):
            return value
        if isinstance(value, date):
            return cls.of(value)
        return cls.parse(value)

    def shift(self, months: int) -> "MonthKey":
        index = self.year * 12 + (self.month - 1) + months
        return MonthKey(year=index // 12, month=index % 12 + 1)

    @property
    def days(self) -> int:
        return days_in_month(self.year, self.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days)

    def day(self, day: int) -> date:
        """The given day of this month, clamped to the month length."""
        return date(self.year, self.month, clamp_day(self.year, self.month, day))

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __lt__(self, other: "MonthKey") -> bool:
        return (self.year, self.month) < (other.year, other.month)
