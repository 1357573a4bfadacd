from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from db.models import Habit, HabitProgress
from db.repository import HabitRepository
from services.errors import ProgressNotFoundError
from utils.datetime_utils import format_date, today_local

logger = logging.getLogger(__name__)


def is_completed(progress_value: float, goal_value: float | None) -> bool:
    if goal_value is not None:
        return float(progress_value) >= float(goal_value)
    return float(progress_value) >= 1


def record_progress(
    repo: HabitRepository,
    user_email: str,
    habit_name: str,
    progress_value: float,
    today: date | None = None,
) -> HabitProgress:
    """
    Log today's progress for a habit and recompute completion and streak.

    Today's row must already exist (the migrator or filler creates it), otherwise
    ProgressNotFoundError is raised. A completed day extends the streak of the
    most recent earlier row when that row was completed, and starts at 1
    otherwise; an incomplete day resets the streak to 0.

    The read of the previous row and the update are not atomic; two concurrent
    calls for the same habit and day may compute the streak from the same prior
    state.
    """
    today = today or today_local()
    row = repo.get_progress(user_email, habit_name, today)
    if row is None:
        raise ProgressNotFoundError(user_email, habit_name, format_date(today))

    habit = repo.get_habit(user_email, habit_name)
    goal_value = habit.goal_value if habit is not None else None
    completed = is_completed(progress_value, goal_value)

    streak = 0
    if completed:
        previous = repo.latest_progress_before(user_email, habit_name, today)
        streak = int(previous.streak or 0) + 1 if previous is not None and previous.completed else 1

    repo.update_progress(row, progress=progress_value, completed=completed, streak=streak)
    repo.commit()
    logger.info(
        f"Recorded progress {progress_value} for habit '{habit_name}' ({user_email}) "
        f"on {format_date(today)}: completed={completed} streak={streak}"
    )
    return row


def progress_to_dict(row: HabitProgress) -> dict:
    return {
        "habit_name": row.habit_name,
        "progress_date": format_date(row.progress_date),
        "progress": row.progress,
        "completed": bool(row.completed),
        "streak": row.streak,
    }


def get_progress_for_date(db: Session, user_email: str, day: date) -> list[dict]:
    rows = (
        db.query(HabitProgress, Habit.goal_value, Habit.habit_type)
        .join(
            Habit,
            (Habit.user_email == HabitProgress.user_email) & (Habit.habit_name == HabitProgress.habit_name),
        )
        .filter(HabitProgress.user_email == user_email, HabitProgress.progress_date == day)
        .order_by(HabitProgress.habit_name.asc())
        .all()
    )
    return [
        {**progress_to_dict(progress), "goal_value": goal_value, "habit_type": habit_type}
        for progress, goal_value, habit_type in rows
    ]


def get_habit_progress_value(repo: HabitRepository, user_email: str, habit_name: str, day: date) -> float:
    row = repo.get_progress(user_email, habit_name, day)
    return float(row.progress) if row is not None else 0.0


def get_habit_streak(repo: HabitRepository, user_email: str, habit_name: str, day: date) -> int:
    row = repo.get_progress(user_email, habit_name, day)
    return int(row.streak) if row is not None else 0
