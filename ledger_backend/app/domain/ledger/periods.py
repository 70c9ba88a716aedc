"""
Date range helpers shared by the projectors and the store.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, List

from ledger_backend.app.core.exceptions import ValidationError


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range; either bound may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self):
        if self.start and self.end and self.start > self.end:
            raise ValidationError(
                "start_date must not be after end_date",
                details={"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}
            )

    def contains(self, day: Optional[date]) -> bool:
        if day is None:
            return False
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


ALL_TIME = DateRange()


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    next_month = (day.replace(day=28) + timedelta(days=4)).replace(day=1)
    return next_month - timedelta(days=1)


def trailing_months(reference: date, months: int) -> List[DateRange]:
    """The `months` calendar months ending with the month of `reference`, oldest first."""
    ranges = []
    cursor = month_start(reference)
    for _ in range(months):
        ranges.append(DateRange(cursor, month_end(cursor)))
        cursor = month_start(cursor - timedelta(days=1))
    ranges.reverse()
    return ranges
