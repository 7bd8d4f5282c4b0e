"""Money and timestamp helpers shared across settlement aggregates."""

from datetime import UTC, datetime

# Amounts closer than this are considered equal after 2-decimal rounding.
MONEY_TOLERANCE = 0.005


def round_money(amount: float) -> float:
    return round(float(amount), 2)


def to_major_units(minor_amount: int | float | str, minor_units_per_major: int) -> float:
    """Convert a gateway amount in minor units (paise, cents) to major units.

    Raises TypeError or ValueError when the amount is missing or not a number.
    """
    return round_money(float(minor_amount) / minor_units_per_major)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to an aware UTC value.

    Persisted timestamps may come back naive depending on the provider; naive
    values are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
