"""
Practice-streak calculation.

A streak is the run of consecutive calendar days, ending today or
yesterday, on which at least one practice was recorded. Day boundaries are
the server's local midnight, so two calls straddling midnight can disagree.
"""
from datetime import date, datetime, timedelta, timezone


def today_local() -> date:
    """Return the current date in the server's local timezone."""
    return datetime.now().astimezone().date()


def local_day(timestamp: datetime) -> date:
    """Reduce a timestamp to a local calendar day.

    Naive timestamps are read as UTC, which is how the database hands them
    back.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone().date()


def streak_days(timestamps, today: date = None) -> int:
    """Count consecutive practice days ending today or yesterday."""
    days = sorted({local_day(ts) for ts in timestamps if ts is not None}, reverse=True)
    if not days:
        return 0

    if today is None:
        today = today_local()
    yesterday = today - timedelta(days=1)
    if days[0] not in (today, yesterday):
        return 0

    streak = 0
    expected = days[0]
    for day in days:
        if day != expected:
            break
        streak += 1
        expected -= timedelta(days=1)
    return streak
