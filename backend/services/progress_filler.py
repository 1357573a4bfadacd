"""
Backfills placeholder progress rows for days nobody opened the app.

When a user stays away longer than the instance horizon there are no
instances left for the migrator to realise, so the missing history is rebuilt
straight from the recurrence rule. Existing rows are never touched.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from db.repository import HabitRepository
from utils.datetime_utils import days_between, interval_dates, today_local, weekly_dates

logger = logging.getLogger(__name__)


def _missed_dates(repo: HabitRepository, user_email: str, habit_name: str, schedule_option: str, today: date) -> list[date]:
    last_progress = repo.max_progress_date(user_email, habit_name) or today
    if last_progress >= today:
        return []

    if schedule_option == "interval":
        increment = repo.get_interval_increment(user_email, habit_name)
        if not increment:
            return []
        # Not due again yet.
        if days_between(last_progress, today) <= increment:
            return []
        candidates = interval_dates(last_progress, today, increment)
    elif schedule_option == "weekly":
        selected_days = repo.get_weekly_days(user_email, habit_name)
        if not selected_days:
            return []
        candidates = weekly_dates(last_progress, today, selected_days)
    else:
        return []

    return [d for d in candidates if d < today]


def fill_missed_progress(
    repo: HabitRepository,
    user_email: str,
    today: date | None = None,
    habits: list | None = None,
) -> int:
    """
    Insert missing placeholder rows for every habit of the user. Returns the number inserted.

    ``habits`` may carry an already loaded habit list; otherwise it is read from the store.
    """
    today = today or today_local()
    inserted = 0
    try:
        if habits is None:
            habits = repo.list_habits(user_email)
        schedules = [(h.habit_name, h.schedule_option) for h in habits]
        for habit_name, schedule_option in schedules:
            filled = 0
            for missed in _missed_dates(repo, user_email, habit_name, schedule_option, today):
                if repo.insert_progress_if_absent(user_email, habit_name, missed):
                    filled += 1
            repo.commit()
            if filled:
                logger.info(f"Filled {filled} missed progress rows for habit '{habit_name}' ({user_email})")
            inserted += filled
    except SQLAlchemyError as e:
        repo.rollback()
        logger.error(f"Error filling missed progress for {user_email}: {e}")
        raise

    logger.info(f"Filled missed progress for {user_email}")
    return inserted
