"""
Input validation for ledger amounts and dates.

Runs before any store access; every failure is a ValidationError.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.exceptions import ValidationError

CENT = Decimal("0.01")


def validate_amount(value: Union[Decimal, str, int, float], field: str = "amount") -> Decimal:
    """
    Parse and check a money amount.

    Must be a finite positive number with at most 2 decimal places and
    no larger than the configured maximum.

    Returns:
        The amount as a Decimal quantized to cents
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a valid number", details={"field": field})

    try:
        # floats go through str() so 0.1 stays 0.1
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a valid number", details={"field": field})

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a valid number", details={"field": field})

    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", details={"field": field})

    if amount > settings.max_entry_amount:
        raise ValidationError(
            f"{field} cannot exceed {settings.max_entry_amount}",
            details={"field": field, "max": str(settings.max_entry_amount)}
        )

    if amount != amount.quantize(CENT):
        raise ValidationError(f"{field} can have at most 2 decimal places", details={"field": field})

    return amount.quantize(CENT)


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # 29 February
        return day.replace(year=day.year - years, day=28)


def validate_ledger_date(value: Union[date, str], field: str = "entry_date", today: Optional[date] = None) -> date:
    """
    Parse and check a ledger date.

    Accepts a date, a datetime (its date part is used) or an ISO
    `YYYY-MM-DD` string. The date may not be in the future nor older than
    `max_entry_age_years`.
    """
    today = today or date.today()

    if isinstance(value, datetime):
        value = value.date()
    elif isinstance(value, str):
        try:
            value = date.fromisoformat(value)
        except ValueError:
            raise ValidationError("Invalid date format", details={"field": field})
    elif not isinstance(value, date):
        raise ValidationError("Invalid date format", details={"field": field})

    if value > today:
        raise ValidationError("Date cannot be in the future", details={"field": field})

    if value < _years_before(today, settings.max_entry_age_years):
        raise ValidationError(
            f"Date cannot be more than {settings.max_entry_age_years} years in the past",
            details={"field": field}
        )

    return value
