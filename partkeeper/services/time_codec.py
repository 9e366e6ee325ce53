"""Conversion between stored timestamp values and calendar months.

All conversions use UTC. Naive ``datetime`` values are taken to be UTC;
aware values are converted to UTC before truncation. A month is represented
by the ``date`` of its first day.
"""

from collections.abc import Iterator
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from partkeeper.core.exceptions import InvalidRepresentation
from partkeeper.models.target import TimestampRepresentation

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MILLIS_PER_SECOND = 1000


def month_start(year: int, month: int) -> date:
    """Return the first day of a month, validating both parts."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    return date(year, month, 1)


def add_months(month: date, count: int) -> date:
    """Shift a month start by ``count`` calendar months (may be negative)."""
    index = month.year * 12 + (month.month - 1) + count
    year, zero_based = divmod(index, 12)
    return date(year, zero_based + 1, 1)


def iter_months(start: date, end: date) -> Iterator[date]:
    """Yield month starts from ``start`` to ``end`` inclusive."""
    current = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    while current <= last:
        yield current
        current = add_months(current, 1)


def truncate_to_month(moment: datetime | date) -> date:
    """Truncate a date or datetime to its month start, in UTC."""
    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(UTC)
        return date(moment.year, moment.month, 1)
    return date(moment.year, moment.month, 1)


def _as_epoch_int(value: Any, representation: TimestampRepresentation) -> int:
    if isinstance(value, bool):
        raise InvalidRepresentation(
            "Boolean is not an epoch value",
            details={"value": value, "representation": representation.value},
        )
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            if value == int(value):
                return int(value)
        except (ValueError, OverflowError):
            pass  # NaN and infinity fall through to the error below
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidRepresentation(
        "Epoch value must be an integer",
        details={"value": repr(value), "representation": representation.value},
    )


def to_datetime(value: Any, representation: TimestampRepresentation) -> datetime:
    """Decode a stored value into an aware UTC datetime.

    Raises:
        InvalidRepresentation: If the value cannot be read under ``representation``.
    """
    if representation == TimestampRepresentation.NATIVE_TIMESTAMP:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=UTC)
            return value.astimezone(UTC)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=UTC)
        raise InvalidRepresentation(
            "Native timestamp expected",
            details={"value": repr(value), "representation": representation.value},
        )

    raw = _as_epoch_int(value, representation)
    if representation == TimestampRepresentation.EPOCH_MILLIS:
        seconds, millis = divmod(raw, _MILLIS_PER_SECOND)
    else:
        seconds, millis = raw, 0
    try:
        return datetime.fromtimestamp(seconds, tz=UTC).replace(microsecond=millis * 1000)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidRepresentation(
            "Epoch value out of range",
            details={"value": raw, "representation": representation.value, "error": str(e)},
        ) from e


def to_month(value: Any, representation: TimestampRepresentation) -> date:
    """Decode a stored value to the start of the month containing it."""
    return truncate_to_month(to_datetime(value, representation))


def from_month(
    month: date,
    representation: TimestampRepresentation,
    with_time_zone: bool = True,
) -> int | datetime:
    """Encode a month start in the stored representation.

    Used for partition bounds and for comparison parameters, so the database
    compares like with like.

    Args:
        month: Month start to encode.
        representation: Storage form of the column.
        with_time_zone: For native columns, return an aware UTC datetime
            (``timestamptz``) or a naive UTC wall-clock one (``timestamp``).
            Drivers refuse to bind an aware value to a ``timestamp`` column.
    """
    moment = datetime(month.year, month.month, 1, tzinfo=UTC)
    if representation == TimestampRepresentation.NATIVE_TIMESTAMP:
        return moment if with_time_zone else moment.replace(tzinfo=None)
    seconds = int((moment - _EPOCH).total_seconds())
    if representation == TimestampRepresentation.EPOCH_MILLIS:
        return seconds * _MILLIS_PER_SECOND
    return seconds


def month_bounds(month: date, representation: TimestampRepresentation) -> tuple[int | datetime, int | datetime]:
    """Return ``[lower, upper)`` for a month in the stored representation."""
    return from_month(month, representation), from_month(add_months(month, 1), representation)
