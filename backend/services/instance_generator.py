"""
Projects upcoming due dates for a habit into habit_instances.

Generation is best-effort: any failure is logged and reported in the
returned GenerationResult rather than raised, so one habit cannot abort a
user's wider sync. A missed cycle heals on the next run because the interval
variant always resumes from the latest stored due date and inserts ignore
duplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta


from config import settings
from db.repository import HabitRepository
from utils.datetime_utils import format_date, interval_dates, today_local, weekly_dates

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    habit_name: str
    ok: bool = True
    created: int = 0
    skipped: bool = False
    error: str | None = None


def _horizon(days_ahead: int | None) -> int:
    if days_ahead is None:
        return int(settings.INSTANCE_HORIZON_DAYS)
    return int(days_ahead)


def generate_interval_instances(
    repo: HabitRepository,
    user_email: str,
    habit_name: str,
    days_ahead: int | None = None,
    today: date | None = None,
) -> GenerationResult:
    result = GenerationResult(habit_name=habit_name)
    try:
        habit = repo.get_habit(user_email, habit_name)
        if habit is None or habit.schedule_option != "interval":
            result.skipped = True
            return result
        increment = repo.get_interval_increment(user_email, habit_name)
        if not increment:
            result.skipped = True
            return result

        today = today or today_local()
        cutoff = today + timedelta(days=_horizon(days_ahead))
        last_date = repo.max_instance_date(user_email, habit_name) or today

        for due in interval_dates(last_date, cutoff, increment):
            if repo.insert_instance_if_absent(user_email, habit_name, due):
                result.created += 1
        repo.commit()
        logger.info(
            f"Generated {result.created} interval instances for habit '{habit_name}' "
            f"({user_email}) through {format_date(cutoff)}"
        )
    except Exception as e:
        repo.rollback()
        result.ok = False
        result.error = str(e)
        logger.warning(f"Interval instance generation failed for habit '{habit_name}' ({user_email}): {e}")
    return result


def generate_day_instances(
    repo: HabitRepository,
    user_email: str,
    habit_name: str,
    days_ahead: int | None = None,
    today: date | None = None,
) -> GenerationResult:
    result = GenerationResult(habit_name=habit_name)
    try:
        selected_days = repo.get_weekly_days(user_email, habit_name)
        if not selected_days:
            logger.info(f"No scheduled days found for habit '{habit_name}' ({user_email})")
            result.skipped = True
            return result

        today = today or today_local()
        cutoff = today + timedelta(days=_horizon(days_ahead))

        for due in weekly_dates(today, cutoff, selected_days):
            if repo.insert_instance_if_absent(user_email, habit_name, due):
                result.created += 1
        repo.commit()
        logger.info(
            f"Generated {result.created} weekly instances for habit '{habit_name}' "
            f"({user_email}) through {format_date(cutoff)}"
        )
    except Exception as e:
        repo.rollback()
        result.ok = False
        result.error = str(e)
        logger.warning(f"Weekly instance generation failed for habit '{habit_name}' ({user_email}): {e}")
    return result


def generate_instances_for_habit(
    repo: HabitRepository,
    user_email: str,
    habit_name: str,
    schedule_option: str,
    days_ahead: int | None = None,
    today: date | None = None,
) -> GenerationResult:
    """Dispatch to the generator matching the habit's recurrence kind."""
    if schedule_option == "interval":
        return generate_interval_instances(repo, user_email, habit_name, days_ahead=days_ahead, today=today)
    if schedule_option == "weekly":
        return generate_day_instances(repo, user_email, habit_name, days_ahead=days_ahead, today=today)
    return GenerationResult(habit_name=habit_name, skipped=True)
