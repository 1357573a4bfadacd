from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base, enable_sqlite_pragmas  # noqa: E402
from db.models import Habit, HabitInstance, HabitProgress, User  # noqa: E402
from db.repository import HabitRepository  # noqa: E402
from services.instance_migrator import migrate_instances  # noqa: E402

EMAIL = "mig@example.com"
TODAY = date(2023, 4, 12)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    enable_sqlite_pragmas(engine)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _seed(db, instances: dict[str, list[date]]):
    db.add(User(email=EMAIL, username="mig_user", password_hash="hash"))
    for name, dues in instances.items():
        db.add(
            Habit(
                user_email=EMAIL,
                habit_name=name,
                habit_type="build",
                habit_color="#aa5500",
                schedule_option="interval",
            )
        )
        db.flush()
        for due in dues:
            db.add(HabitInstance(user_email=EMAIL, habit_name=name, due_date=due))
    db.commit()


def _instances(db):
    return sorted((r.habit_name, r.due_date) for r in db.query(HabitInstance).all())


def _progress(db):
    return {
        (r.habit_name, r.progress_date): (r.progress, r.completed, r.streak)
        for r in db.query(HabitProgress).all()
    }


def test_equality_condition_only_migrates_today():
    db = _new_db()
    _seed(db, {"Walk": [date(2023, 4, 10), TODAY, date(2023, 4, 14)]})

    result = migrate_instances(HabitRepository(db), EMAIL, "=", TODAY)

    assert result.ok
    assert result.migrated == [("Walk", TODAY)]
    assert _progress(db) == {("Walk", TODAY): (0.0, False, 0)}
    assert _instances(db) == [("Walk", date(2023, 4, 10)), ("Walk", date(2023, 4, 14))]


def test_less_or_equal_condition_catches_up_overdue_instances():
    db = _new_db()
    _seed(db, {"Walk": [date(2023, 4, 10), TODAY, date(2023, 4, 14)], "Read": [date(2023, 4, 11)]})

    result = migrate_instances(HabitRepository(db), EMAIL, "<=", TODAY)

    assert result.count == 3
    assert set(_progress(db)) == {
        ("Walk", date(2023, 4, 10)),
        ("Walk", TODAY),
        ("Read", date(2023, 4, 11)),
    }
    assert all(values == (0.0, False, 0) for values in _progress(db).values())
    assert _instances(db) == [("Walk", date(2023, 4, 14))]


def test_second_migration_is_a_no_op():
    db = _new_db()
    _seed(db, {"Walk": [date(2023, 4, 10), TODAY]})
    repo = HabitRepository(db)

    migrate_instances(repo, EMAIL, "<=", TODAY)
    snapshot = _progress(db)
    second = migrate_instances(repo, EMAIL, "<=", TODAY)

    assert second.ok
    assert second.count == 0
    assert _progress(db) == snapshot


def test_existing_progress_row_is_kept_when_instance_is_consumed():
    db = _new_db()
    _seed(db, {"Walk": [TODAY]})
    db.add(HabitProgress(user_email=EMAIL, habit_name="Walk", progress_date=TODAY, progress=4.0, completed=True, streak=3))
    db.commit()

    migrate_instances(HabitRepository(db), EMAIL, "=", TODAY)

    assert _progress(db) == {("Walk", TODAY): (4.0, True, 3)}
    assert _instances(db) == []


def test_date_value_accepts_iso_string():
    db = _new_db()
    _seed(db, {"Walk": [TODAY]})

    result = migrate_instances(HabitRepository(db), EMAIL, "=", "2023-04-12")

    assert result.migrated == [("Walk", TODAY)]


def test_unknown_condition_is_rejected_before_querying():
    db = _new_db()
    with pytest.raises(ValueError):
        migrate_instances(HabitRepository(db), EMAIL, "= '' OR 1=1 --", TODAY)


class _FailingDeleteRepository(HabitRepository):
    def delete_instance(self, user_email, habit_name, due_date):
        raise OperationalError("DELETE FROM habit_instances", {}, Exception("disk I/O error"))


def test_failure_keeps_the_instance_for_the_next_run():
    db = _new_db()
    _seed(db, {"Walk": [TODAY]})

    result = migrate_instances(_FailingDeleteRepository(db), EMAIL, "=", TODAY)

    assert result.ok is False
    assert _instances(db) == [("Walk", TODAY)]
    # The progress insert was rolled back together with the failed delete.
    assert _progress(db) == {}

    retry = migrate_instances(HabitRepository(db), EMAIL, "=", TODAY)
    assert retry.count == 1
    assert _instances(db) == []


class _CorruptInstanceRepository(HabitRepository):
    def find_instances(self, user_email, date_condition, date_value):
        raise ValueError("unreadable due date in habit_instances")


def test_non_store_failure_is_reported_not_raised():
    db = _new_db()
    _seed(db, {"Walk": [TODAY]})

    result = migrate_instances(_CorruptInstanceRepository(db), EMAIL, "=", TODAY)

    assert result.ok is False
    assert result.count == 0
    assert "unreadable due date" in (result.error or "")
    assert _instances(db) == [("Walk", TODAY)]
