"""Store access for the scheduling engine.

Every scheduling component talks to the database through a HabitRepository
bound to the caller's session, so tests can hand in an in-memory session (or a
stand-in object) instead of relying on a module-level connection.
"""

from __future__ import annotations

import operator
from datetime import date

from sqlalchemy import func, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models import Habit, HabitDay, HabitInstance, HabitInterval, HabitProgress
from utils.datetime_utils import WEEKDAY_NAMES

# Comparison operators a caller may use when scanning instances by due date.
DATE_CONDITIONS = {
    "=": operator.eq,
    "<=": operator.le,
    "<": operator.lt,
    ">=": operator.ge,
    ">": operator.gt,
}


class HabitRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    # --- transaction control ---

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    # --- habits and their recurrence rules ---

    def get_habit(self, user_email: str, habit_name: str) -> Habit | None:
        return (
            self.db.query(Habit)
            .filter(Habit.user_email == user_email, Habit.habit_name == habit_name)
            .first()
        )

    def list_habits(self, user_email: str) -> list[Habit]:
        return (
            self.db.query(Habit)
            .filter(Habit.user_email == user_email)
            .order_by(Habit.habit_name.asc())
            .all()
        )

    def get_interval_increment(self, user_email: str, habit_name: str) -> int | None:
        row = (
            self.db.query(HabitInterval.increment)
            .filter(HabitInterval.user_email == user_email, HabitInterval.habit_name == habit_name)
            .first()
        )
        if row is None or row.increment is None:
            return None
        return int(row.increment)

    def get_weekly_days(self, user_email: str, habit_name: str) -> list[str]:
        rows = (
            self.db.query(HabitDay.day)
            .filter(HabitDay.user_email == user_email, HabitDay.habit_name == habit_name)
            .all()
        )
        days = {str(row.day) for row in rows}
        return [name for name in WEEKDAY_NAMES if name in days]

    # --- instances ---

    def max_instance_date(self, user_email: str, habit_name: str) -> date | None:
        return (
            self.db.query(func.max(HabitInstance.due_date))
            .filter(HabitInstance.user_email == user_email, HabitInstance.habit_name == habit_name)
            .scalar()
        )

    def insert_instance_if_absent(self, user_email: str, habit_name: str, due_date: date) -> bool:
        return self._insert_if_absent(
            HabitInstance,
            {"user_email": user_email, "habit_name": habit_name, "due_date": due_date},
        )

    def find_instances(self, user_email: str, date_condition: str, date_value: date) -> list[tuple[str, date]]:
        compare = DATE_CONDITIONS.get(date_condition)
        if compare is None:
            raise ValueError(f"Unsupported date condition: {date_condition!r}")
        rows = (
            self.db.query(HabitInstance.habit_name, HabitInstance.due_date)
            .filter(HabitInstance.user_email == user_email, compare(HabitInstance.due_date, date_value))
            .order_by(HabitInstance.due_date.asc(), HabitInstance.habit_name.asc())
            .all()
        )
        return [(row.habit_name, row.due_date) for row in rows]

    def delete_instance(self, user_email: str, habit_name: str, due_date: date) -> int:
        return (
            self.db.query(HabitInstance)
            .filter(
                HabitInstance.user_email == user_email,
                HabitInstance.habit_name == habit_name,
                HabitInstance.due_date == due_date,
            )
            .delete(synchronize_session=False)
        )

    # --- progress ---

    def max_progress_date(self, user_email: str, habit_name: str) -> date | None:
        return (
            self.db.query(func.max(HabitProgress.progress_date))
            .filter(HabitProgress.user_email == user_email, HabitProgress.habit_name == habit_name)
            .scalar()
        )

    def insert_progress_if_absent(
        self,
        user_email: str,
        habit_name: str,
        progress_date: date,
        progress: float = 0.0,
        completed: bool = False,
        streak: int = 0,
    ) -> bool:
        return self._insert_if_absent(
            HabitProgress,
            {
                "user_email": user_email,
                "habit_name": habit_name,
                "progress_date": progress_date,
                "progress": progress,
                "completed": completed,
                "streak": streak,
            },
        )

    def get_progress(self, user_email: str, habit_name: str, progress_date: date) -> HabitProgress | None:
        return (
            self.db.query(HabitProgress)
            .filter(
                HabitProgress.user_email == user_email,
                HabitProgress.habit_name == habit_name,
                HabitProgress.progress_date == progress_date,
            )
            .first()
        )

    def latest_progress_before(self, user_email: str, habit_name: str, before: date) -> HabitProgress | None:
        return (
            self.db.query(HabitProgress)
            .filter(
                HabitProgress.user_email == user_email,
                HabitProgress.habit_name == habit_name,
                HabitProgress.progress_date < before,
            )
            .order_by(HabitProgress.progress_date.desc())
            .first()
        )

    def update_progress(self, row: HabitProgress, *, progress: float, completed: bool, streak: int) -> HabitProgress:
        row.progress = float(progress)
        row.completed = bool(completed)
        row.streak = int(streak)
        self.db.flush()
        return row

    # --- helpers ---

    def _insert_if_absent(self, model, values: dict) -> bool:
        """Insert a row unless its primary key already exists. Returns True when a row was written."""
        table = model.__table__
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing()
        elif dialect == "postgresql":
            stmt = pg_insert(table).values(**values).on_conflict_do_nothing()
        else:
            stmt = insert(table).values(**values).prefix_with("IGNORE")
        result = self.db.execute(stmt)
        return bool(result.rowcount and result.rowcount > 0)
