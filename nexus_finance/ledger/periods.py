"""
Month arithmetic on YYYY-MM keys.

Every ledger operation is scoped to a month key. These helpers are the
only place that parses them.
"""

from datetime import date

from nexus_finance.models.budget import MONTH_PATTERN


class InvalidPeriodError(ValueError):
    """A month key is not formatted as YYYY-MM."""
    pass


def parse_month(month: str) -> tuple[int, int]:
    """Split 'YYYY-MM' into (year, month)."""
    if not isinstance(month, str) or not MONTH_PATTERN.match(month):
        raise InvalidPeriodError(f"Invalid month key: {month!r}")
    year, month_num = month.split("-")
    return int(year), int(month_num)


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def is_valid_month(month: str) -> bool:
    return isinstance(month, str) and bool(MONTH_PATTERN.match(month))


def months_between(start: str, end: str) -> int:
    """
    Calendar-month difference from start to end.

    Negative when end is before start: months_between("2024-03", "2024-01") == -2.
    """
    start_year, start_month = parse_month(start)
    end_year, end_month = parse_month(end)
    return (end_year - start_year) * 12 + (end_month - start_month)


def add_months(month: str, count: int) -> str:
    year, month_num = parse_month(month)
    index = year * 12 + (month_num - 1) + count
    return format_month(index // 12, index % 12 + 1)


def month_start(month: str) -> date:
    """First calendar day of the month, used as the date of synthetic entries."""
    year, month_num = parse_month(month)
    return date(year, month_num, 1)


def month_of(day: date) -> str:
    return format_month(day.year, day.month)


def previous_months(month: str, count: int) -> list[str]:
    """The `count` months ending at `month`, oldest first."""
    return [add_months(month, -offset) for offset in range(count - 1, -1, -1)]
