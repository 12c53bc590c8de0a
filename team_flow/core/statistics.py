"""Small numeric helpers shared by the dashboards."""

import calendar
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

SECONDS_PER_DAY = 86400


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def lower_median(values: Iterable[float]) -> Optional[float]:
    """
    Lower-middle element of the ascending-sorted values.

    For odd lengths this is the ordinary median. For even lengths the lower
    of the two middle elements is returned instead of their average, so
    ``[1, 2, 3, 4]`` gives 2. The input is never reordered.

    Parameters
    ----------
    values : Iterable[float]
        Samples to summarize

    Returns
    -------
    Optional[float]
        The lower median, or None when there are no samples
    """
    ordered = sorted(values)
    if not ordered:
        return None
    return ordered[(len(ordered) - 1) // 2]


def placeholder_streak(completed: int) -> int:
    """
    Stand-in streak for the productivity ranking.

    Not a consecutive-completion streak: it is half the completed count,
    rounded down, until real completion history is tracked.
    """
    return completed // 2


def elapsed_days(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY


def whole_hours_as_days(start: datetime, end: datetime) -> float:
    """Elapsed whole hours (truncated toward zero) expressed in days."""
    hours = int((end - start).total_seconds() / 3600)
    return hours / 24


def months_before(moment: datetime, months: int) -> datetime:
    """
    Same wall-clock time ``months`` calendar months earlier.

    The day is clamped to the length of the target month
    (May 31 minus 3 months is February 28/29).
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def start_of_week(moment: datetime, week_starts_on: int = 0) -> datetime:
    """
    Midnight of the first day of the week containing ``moment``.

    ``week_starts_on`` uses ``datetime.weekday()`` numbering (0 = Monday,
    the ISO-8601 convention). The result keeps ``moment``'s timezone.
    """
    offset = (moment.weekday() - week_starts_on) % 7
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=offset)
