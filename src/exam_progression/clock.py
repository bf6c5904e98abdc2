"""Calendar keys used for every day/week/month decision.

All temporal rules compare these derived keys rather than raw timestamps,
so a boundary is the same whether it is crossed at 00:01 or 23:59.
"""

from datetime import date, datetime, timedelta

DATE_FORMAT = "%Y-%m-%d"


def _local(ts: datetime) -> datetime:
    """Aware timestamps are converted to local time; naive ones are assumed local."""
    if ts.tzinfo is not None:
        return ts.astimezone()
    return ts


def date_key(ts: datetime) -> str:
    """Canonical ``YYYY-MM-DD`` key of the local calendar day."""
    return _local(ts).strftime(DATE_FORMAT)


def week_start(ts: datetime) -> str:
    """Date key of the Monday on or before ``ts`` (Sunday closes the prior week)."""
    day = _local(ts).date()
    return (day - timedelta(days=day.weekday())).strftime(DATE_FORMAT)


def month_key(ts: datetime) -> str:
    """``YYYY-MM`` key of the local calendar month."""
    return _local(ts).strftime("%Y-%m")


def parse_date_key(key: str) -> date:
    return datetime.strptime(key, DATE_FORMAT).date()


def day_start(key: str) -> datetime:
    """Local midnight of the day named by ``key``."""
    return datetime.combine(parse_date_key(key), datetime.min.time())


def previous_date_key(ts: datetime) -> str:
    return (_local(ts).date() - timedelta(days=1)).strftime(DATE_FORMAT)


def days_between(earlier: str, later: str) -> int:
    """Whole calendar days from ``earlier`` to ``later`` (negative if reversed)."""
    return (parse_date_key(later) - parse_date_key(earlier)).days


def date_keys_after(last: str, until: str) -> list[str]:
    """Date keys strictly after ``last`` up to and including ``until``."""
    start = parse_date_key(last)
    span = (parse_date_key(until) - start).days
    return [
        (start + timedelta(days=offset)).strftime(DATE_FORMAT)
        for offset in range(1, span + 1)
    ]
