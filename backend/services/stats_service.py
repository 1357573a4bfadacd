from __future__ import annotations

from datetime import date

from sqlalchemy import case, extract, func
from sqlalchemy.orm import Session

from db.models import HabitProgress
from utils.datetime_utils import format_date, start_of_month, start_of_week, today_local

VALID_RANGES = {"week", "month", "year"}


def _habit_filter(user_email: str, habit_name: str):
    return (HabitProgress.user_email == user_email, HabitProgress.habit_name == habit_name)


def range_start(range_name: str, today: date) -> date:
    if range_name == "week":
        return start_of_week(today)
    if range_name == "month":
        return start_of_month(today)
    raise ValueError(f"Invalid range: {range_name!r}")


def longest_streak(db: Session, user_email: str, habit_name: str) -> int:
    value = db.query(func.max(HabitProgress.streak)).filter(*_habit_filter(user_email, habit_name)).scalar()
    return int(value or 0)


def completion_rate(db: Session, user_email: str, habit_name: str) -> int:
    """Percentage of recorded days that were completed, rounded to a whole number."""
    completed_days, total_days = (
        db.query(
            func.sum(case((HabitProgress.completed.is_(True), 1), else_=0)),
            func.count(),
        )
        .filter(*_habit_filter(user_email, habit_name))
        .one()
    )
    if not total_days:
        return 0
    return round((int(completed_days or 0) / int(total_days)) * 100)


def average_progress(db: Session, user_email: str, habit_name: str) -> int:
    value = db.query(func.avg(HabitProgress.progress)).filter(*_habit_filter(user_email, habit_name)).scalar()
    return round(float(value or 0))


def streak_history(
    db: Session, user_email: str, habit_name: str, range_name: str, today: date | None = None
) -> list[dict]:
    if range_name not in {"week", "month"}:
        raise ValueError('Invalid range: use "week" or "month"')
    start = range_start(range_name, today or today_local())
    rows = (
        db.query(HabitProgress.progress_date, HabitProgress.streak)
        .filter(*_habit_filter(user_email, habit_name), HabitProgress.progress_date >= start)
        .order_by(HabitProgress.progress_date.asc())
        .all()
    )
    return [{"progress_date": format_date(row.progress_date), "streak": row.streak} for row in rows]


def progress_history(
    db: Session, user_email: str, habit_name: str, range_name: str, today: date | None = None
) -> list[dict]:
    """
    Progress over a range.

    week / month return one entry per recorded day since the start of the
    current week (Monday) or month; year returns the average progress per
    month of the current year.
    """
    if range_name not in VALID_RANGES:
        raise ValueError("Invalid range")
    today = today or today_local()

    if range_name == "year":
        month = extract("month", HabitProgress.progress_date)
        rows = (
            db.query(month.label("month"), func.avg(HabitProgress.progress).label("avg_progress"))
            .filter(
                *_habit_filter(user_email, habit_name),
                HabitProgress.progress_date >= date(today.year, 1, 1),
                HabitProgress.progress_date <= date(today.year, 12, 31),
            )
            .group_by(month)
            .order_by(month.asc())
            .all()
        )
        return [{"month": int(row.month), "avg_progress": float(row.avg_progress or 0)} for row in rows]

    start = range_start(range_name, today)
    rows = (
        db.query(HabitProgress.progress_date, HabitProgress.progress)
        .filter(*_habit_filter(user_email, habit_name), HabitProgress.progress_date >= start)
        .order_by(HabitProgress.progress_date.asc())
        .all()
    )
    return [{"progress_date": format_date(row.progress_date), "progress": row.progress} for row in rows]
