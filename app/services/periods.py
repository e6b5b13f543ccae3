import calendar
from datetime import date, timedelta


def month_start(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    """First day of the month ``months`` away from ``day``'s month."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_bounds(day: date) -> tuple[date, date]:
    """[first day of the month, first day of the next month)."""
    start = month_start(day)
    return start, add_months(start, 1)


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def period_bounds(period: str, today: date) -> tuple[date, date]:
    """Half-open date range for a query period name."""
    if period == "today":
        return today, today + timedelta(days=1)
    if period == "yesterday":
        return today - timedelta(days=1), today
    if period == "week":
        start = today - timedelta(days=today.weekday())
        return start, today + timedelta(days=1)
    if period == "last_week":
        this_week = today - timedelta(days=today.weekday())
        return this_week - timedelta(days=7), this_week
    if period == "year":
        return date(today.year, 1, 1), today + timedelta(days=1)
    if period == "last_month":
        start = add_months(today, -1)
        return start, month_start(today)
    return month_start(today), today + timedelta(days=1)


def reminder_days_for(today: date) -> set[int]:
    """Reminder days due today; the last day of a month also covers 29-31."""
    days = {today.day}
    last = days_in_month(today)
    if today.day == last:
        days.update(range(last + 1, 32))
    return days
