from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from db.models import HABIT_TYPES, SCHEDULE_OPTIONS, Habit, HabitDay, HabitInstance, HabitInterval, HabitProgress
from db.repository import HabitRepository
from services.errors import HabitAlreadyExistsError, HabitNotFoundError
from services.instance_generator import generate_day_instances, generate_instances_for_habit, generate_interval_instances
from services.instance_migrator import migrate_instances
from utils.datetime_utils import WEEKDAY_NAMES, format_date, today_local, weekday_name

logger = logging.getLogger(__name__)

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
# Collides with the /habits/date/{day} route.
RESERVED_HABIT_NAMES = {"date"}


@dataclass
class HabitDefinition:
    habit_name: str
    habit_type: str
    habit_color: str
    schedule_option: str
    habit_description: str = ""
    interval_days: int | None = None
    selected_days: list[str] = field(default_factory=list)
    goal_value: float | None = None
    goal_unit: str | None = None


def normalize_weekdays(days) -> list[str]:
    """Canonical weekday names in Monday..Sunday order, duplicates dropped."""
    wanted = set()
    for raw in days or []:
        name = str(raw or "").strip().capitalize()
        if name not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown weekday: {raw!r}")
        wanted.add(name)
    return [name for name in WEEKDAY_NAMES if name in wanted]


def validate_definition(definition: HabitDefinition) -> HabitDefinition:
    name = " ".join((definition.habit_name or "").strip().split())
    if not name:
        raise ValueError("habit_name is required")
    if name.lower() in RESERVED_HABIT_NAMES:
        raise ValueError(f"habit_name '{name}' is reserved")
    if definition.habit_type not in HABIT_TYPES:
        raise ValueError("habit_type must be build or quit")
    if definition.schedule_option not in SCHEDULE_OPTIONS:
        raise ValueError("schedule_option must be interval or weekly")
    if not HEX_COLOR_RE.match(definition.habit_color or ""):
        raise ValueError("habit_color must be a #RRGGBB value")

    interval_days = None
    selected_days: list[str] = []
    if definition.schedule_option == "interval":
        if definition.interval_days is None or int(definition.interval_days) < 1:
            raise ValueError("interval_days must be a positive integer for interval habits")
        interval_days = int(definition.interval_days)
    else:
        selected_days = normalize_weekdays(definition.selected_days)

    return HabitDefinition(
        habit_name=name,
        habit_type=definition.habit_type,
        habit_color=definition.habit_color,
        schedule_option=definition.schedule_option,
        habit_description=definition.habit_description or "",
        interval_days=interval_days,
        selected_days=selected_days,
        goal_value=definition.goal_value,
        goal_unit=(definition.goal_unit or None),
    )


def habit_to_dict(habit: Habit) -> dict:
    return {
        "habit_name": habit.habit_name,
        "habit_description": habit.habit_description,
        "habit_type": habit.habit_type,
        "habit_color": habit.habit_color,
        "schedule_option": habit.schedule_option,
        "goal_value": habit.goal_value,
        "goal_unit": habit.goal_unit,
    }


def _write_schedule(db: Session, user_email: str, definition: HabitDefinition) -> None:
    if definition.schedule_option == "weekly":
        for day in definition.selected_days:
            db.add(HabitDay(user_email=user_email, habit_name=definition.habit_name, day=day))
    elif definition.interval_days:
        db.add(HabitInterval(user_email=user_email, habit_name=definition.habit_name, increment=definition.interval_days))


def create_habit(db: Session, user_email: str, definition: HabitDefinition, today: date | None = None) -> Habit:
    definition = validate_definition(definition)
    repo = HabitRepository(db)
    if repo.get_habit(user_email, definition.habit_name) is not None:
        raise HabitAlreadyExistsError("Habit already exists for this user")

    habit = Habit(
        user_email=user_email,
        habit_name=definition.habit_name,
        habit_description=definition.habit_description,
        habit_type=definition.habit_type,
        habit_color=definition.habit_color,
        schedule_option=definition.schedule_option,
        goal_value=definition.goal_value,
        goal_unit=definition.goal_unit,
    )
    db.add(habit)
    db.flush()
    _write_schedule(db, user_email, definition)
    db.commit()

    today = today or today_local()
    # Each generator skips habits of the other recurrence kind.
    generate_interval_instances(repo, user_email, definition.habit_name, today=today)
    generate_day_instances(repo, user_email, definition.habit_name, today=today)
    migrate_instances(repo, user_email, "=", today)
    logger.info(f"Created habit '{definition.habit_name}' for {user_email}")
    return repo.get_habit(user_email, definition.habit_name)


def update_habit(db: Session, user_email: str, definition: HabitDefinition, today: date | None = None) -> Habit:
    definition = validate_definition(definition)
    repo = HabitRepository(db)
    habit = repo.get_habit(user_email, definition.habit_name)
    if habit is None:
        raise HabitNotFoundError("Habit not found")
    today = today or today_local()

    habit.habit_description = definition.habit_description
    habit.habit_type = definition.habit_type
    habit.habit_color = definition.habit_color
    habit.schedule_option = definition.schedule_option
    habit.goal_value = definition.goal_value
    habit.goal_unit = definition.goal_unit

    db.query(HabitDay).filter(
        HabitDay.user_email == user_email, HabitDay.habit_name == definition.habit_name
    ).delete(synchronize_session=False)
    db.query(HabitInterval).filter(
        HabitInterval.user_email == user_email, HabitInterval.habit_name == definition.habit_name
    ).delete(synchronize_session=False)
    db.flush()
    _write_schedule(db, user_email, definition)

    # A weekly habit that is no longer scheduled today should not stay on today's list.
    if definition.schedule_option == "weekly" and weekday_name(today) not in definition.selected_days:
        db.query(HabitProgress).filter(
            HabitProgress.user_email == user_email,
            HabitProgress.habit_name == definition.habit_name,
            HabitProgress.progress_date == today,
        ).delete(synchronize_session=False)

    db.query(HabitInstance).filter(
        HabitInstance.user_email == user_email, HabitInstance.habit_name == definition.habit_name
    ).delete(synchronize_session=False)
    db.commit()

    generate_instances_for_habit(repo, user_email, definition.habit_name, definition.schedule_option, today=today)
    migrate_instances(repo, user_email, "=", today)
    logger.info(f"Updated habit '{definition.habit_name}' for {user_email}")
    return repo.get_habit(user_email, definition.habit_name)


def delete_habit(db: Session, user_email: str, habit_name: str) -> None:
    habit = HabitRepository(db).get_habit(user_email, habit_name)
    if habit is None:
        raise HabitNotFoundError("Habit not found")
    db.delete(habit)
    db.commit()
    logger.info(f"Deleted habit '{habit_name}' for {user_email}")


def list_habit_summaries(db: Session, user_email: str) -> list[dict]:
    habits = HabitRepository(db).list_habits(user_email)
    return [
        {"habit_name": h.habit_name, "habit_type": h.habit_type, "goal_value": h.goal_value}
        for h in habits
    ]


def get_habits_for_date(db: Session, user_email: str, day: date, today: date | None = None) -> list[dict]:
    """
    Habits scheduled on ``day``.

    Future days are read from pending instances; today and past days from
    progress rows, after realising anything already due.
    """
    repo = HabitRepository(db)
    today = today or today_local()
    migrate_instances(repo, user_email, "<=", today)

    if day > today:
        source, date_column = HabitInstance, HabitInstance.due_date
    else:
        source, date_column = HabitProgress, HabitProgress.progress_date

    habits = (
        db.query(Habit)
        .join(source, (source.user_email == Habit.user_email) & (source.habit_name == Habit.habit_name))
        .filter(Habit.user_email == user_email, date_column == day)
        .order_by(Habit.habit_name.asc())
        .all()
    )
    return [{**habit_to_dict(h), "date": format_date(day)} for h in habits]


def get_habit_days(db: Session, user_email: str, habit_name: str) -> list[str]:
    return HabitRepository(db).get_weekly_days(user_email, habit_name)


def get_habit_interval(db: Session, user_email: str, habit_name: str) -> int | None:
    return HabitRepository(db).get_interval_increment(user_email, habit_name)
