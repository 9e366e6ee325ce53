"""Canonical monthly partition names.

Partitions are named ``{base}_y{yyyy}m{mm}`` (e.g. ``events_y2025m06``).
Parsing is strict so that unrelated tables sharing the prefix, such as
``events_y2025m06_backup``, are never mistaken for partitions.
"""

import re

from partkeeper.core.exceptions import MalformedPartitionName
from partkeeper.models.target import MAX_IDENTIFIER_LENGTH

_SUFFIX_PATTERN = r"_y(?P<year>[0-9]{4})m(?P<month>[0-9]{2})"


def prefix(base: str) -> str:
    """Prefix shared by every partition of ``base``, used for catalog discovery."""
    return f"{base}_y"


def name(base: str, year: int, month: int) -> str:
    """Build the partition name for a month.

    Raises:
        MalformedPartitionName: If the month is out of range or the name would
            exceed PostgreSQL's identifier length.
    """
    if not 1 <= year <= 9999 or not 1 <= month <= 12:
        raise MalformedPartitionName(
            "Year or month out of range",
            details={"base": base, "year": year, "month": month},
        )
    identifier = f"{base}_y{year:04d}m{month:02d}"
    if len(identifier.encode("utf-8")) > MAX_IDENTIFIER_LENGTH:
        raise MalformedPartitionName(
            "Partition name exceeds identifier length limit",
            details={"name": identifier, "limit": MAX_IDENTIFIER_LENGTH},
        )
    return identifier


def parse(base: str, identifier: str) -> tuple[int, int]:
    """Recover ``(year, month)`` from a partition name produced by :func:`name`.

    Raises:
        MalformedPartitionName: If ``identifier`` is not exactly a partition
            name of ``base``.
    """
    match = re.fullmatch(re.escape(base) + _SUFFIX_PATTERN, identifier)
    if not match:
        raise MalformedPartitionName(
            "Not a partition of this table",
            details={"base": base, "name": identifier},
        )
    year, month = int(match.group("year")), int(match.group("month"))
    if year < 1 or not 1 <= month <= 12:
        raise MalformedPartitionName(
            "Partition name encodes an invalid month",
            details={"base": base, "name": identifier},
        )
    return year, month
