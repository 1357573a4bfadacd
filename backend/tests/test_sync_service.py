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
from db.models import Habit, HabitDay, HabitInstance, HabitInterval, HabitProgress, User  # noqa: E402
from db.repository import HabitRepository  # noqa: E402
from services.errors import InvalidHabitDataError  # noqa: E402
from services.sync_service import SYNC_STEPS, SyncStepError, sync_habits  # noqa: E402

EMAIL = "sync@example.com"


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    enable_sqlite_pragmas(engine)
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    db.add(User(email=EMAIL, username="sync_user", password_hash="hash"))
    db.commit()
    return db


def _add_habit(db, name: str, schedule_option: str, increment: int | None = None, days=()):
    db.add(
        Habit(
            user_email=EMAIL,
            habit_name=name,
            habit_type="build",
            habit_color="#5500ff",
            schedule_option=schedule_option,
        )
    )
    db.flush()
    if increment:
        db.add(HabitInterval(user_email=EMAIL, habit_name=name, increment=increment))
    for day in days:
        db.add(HabitDay(user_email=EMAIL, habit_name=name, day=day))
    db.commit()


def _dates(db, model, column, name: str) -> list[str]:
    rows = db.query(column).filter(model.habit_name == name).order_by(column).all()
    return [row[0].isoformat() for row in rows]


def test_steps_run_in_fixed_order():
    assert [name for name, _step in SYNC_STEPS] == ["migrate", "fill", "generate"]


def test_sync_realises_overdue_instances_and_refills_horizon():
    db = _new_db()
    _add_habit(db, "Walk", "interval", increment=2)
    db.add(HabitInstance(user_email=EMAIL, habit_name="Walk", due_date=date(2023, 3, 8)))
    db.add(HabitInstance(user_email=EMAIL, habit_name="Walk", due_date=date(2023, 3, 10)))
    db.add(HabitInstance(user_email=EMAIL, habit_name="Walk", due_date=date(2023, 3, 12)))
    db.commit()

    report = sync_habits(HabitRepository(db), EMAIL, today=date(2023, 3, 10), days_ahead=7)

    assert report.completed_steps == ["migrate", "fill", "generate"]
    assert report.migration.count == 2
    assert _dates(db, HabitProgress, HabitProgress.progress_date, "Walk") == ["2023-03-08", "2023-03-10"]
    # Generation continues the cadence from the latest pending instance.
    assert _dates(db, HabitInstance, HabitInstance.due_date, "Walk") == [
        "2023-03-12",
        "2023-03-14",
        "2023-03-16",
    ]


def test_sync_backfills_gap_beyond_instance_horizon():
    db = _new_db()
    _add_habit(db, "Gym", "weekly", days=["Monday", "Wednesday", "Friday"])
    db.add(HabitProgress(user_email=EMAIL, habit_name="Gym", progress_date=date(2023, 1, 2), progress=1, completed=True, streak=1))
    db.commit()

    report = sync_habits(HabitRepository(db), EMAIL, today=date(2023, 1, 16), days_ahead=7)

    assert report.filled == 5
    assert _dates(db, HabitProgress, HabitProgress.progress_date, "Gym") == [
        "2023-01-02",
        "2023-01-04",
        "2023-01-06",
        "2023-01-09",
        "2023-01-11",
        "2023-01-13",
    ]
    assert _dates(db, HabitInstance, HabitInstance.due_date, "Gym") == [
        "2023-01-16",
        "2023-01-18",
        "2023-01-20",
        "2023-01-23",
    ]


def test_repeated_sync_settles_after_second_run():
    db = _new_db()
    _add_habit(db, "Gym", "weekly", days=["Tuesday"])
    _add_habit(db, "Walk", "interval", increment=3)
    repo = HabitRepository(db)
    today = date(2023, 5, 2)

    first = sync_habits(repo, EMAIL, today=today)
    assert first.migration.count == 0
    # Instances generated for today are realised by the next run.
    second = sync_habits(repo, EMAIL, today=today)
    assert sorted(second.migration.migrated) == [("Gym", today), ("Walk", today)]
    assert second.filled == 0

    walk = db.query(HabitProgress).filter(HabitProgress.habit_name == "Walk").one()
    walk.progress, walk.completed, walk.streak = 2.0, True, 1
    db.commit()
    instances = _dates(db, HabitInstance, HabitInstance.due_date, "Gym") + _dates(
        db, HabitInstance, HabitInstance.due_date, "Walk"
    )
    progress = db.query(HabitProgress).count()

    third = sync_habits(repo, EMAIL, today=today)

    assert third.filled == 0
    assert _dates(db, HabitInstance, HabitInstance.due_date, "Gym") + _dates(
        db, HabitInstance, HabitInstance.due_date, "Walk"
    ) == instances
    assert db.query(HabitProgress).count() == progress
    db.refresh(walk)
    assert (walk.progress, walk.completed, walk.streak) == (2.0, True, 1)


class _InvalidHabitListRepository(HabitRepository):
    def __init__(self, db):
        super().__init__(db)
        self.generated = 0

    def list_habits(self, user_email):
        return {"habitName": "Walk"}

    def insert_instance_if_absent(self, *args, **kwargs):
        self.generated += 1
        return super().insert_instance_if_absent(*args, **kwargs)


def test_invalid_habit_list_aborts_sync():
    db = _new_db()
    _add_habit(db, "Walk", "interval", increment=1)
    repo = _InvalidHabitListRepository(db)

    with pytest.raises(InvalidHabitDataError, match="Invalid habits data"):
        sync_habits(repo, EMAIL, today=date(2023, 5, 2))

    assert repo.generated == 0
    assert db.query(HabitProgress).count() == 0


class _OneHabitFailsRepository(HabitRepository):
    def insert_instance_if_absent(self, user_email, habit_name, due_date):
        if habit_name == "Broken":
            raise OperationalError("INSERT INTO habit_instances", {}, Exception("constraint hiccup"))
        return super().insert_instance_if_absent(user_email, habit_name, due_date)


def test_one_failing_habit_does_not_block_the_others():
    db = _new_db()
    _add_habit(db, "Broken", "interval", increment=1)
    _add_habit(db, "Fine", "interval", increment=1)

    report = sync_habits(_OneHabitFailsRepository(db), EMAIL, today=date(2023, 5, 2), days_ahead=2)

    assert [r.habit_name for r in report.generation_failures] == ["Broken"]
    assert _dates(db, HabitInstance, HabitInstance.due_date, "Fine") == ["2023-05-02", "2023-05-03", "2023-05-04"]
    assert _dates(db, HabitInstance, HabitInstance.due_date, "Broken") == []


class _MigrationFailsRepository(HabitRepository):
    def __init__(self, db):
        super().__init__(db)
        self.listed = False

    def find_instances(self, *args, **kwargs):
        raise OperationalError("SELECT FROM habit_instances", {}, Exception("connection lost"))

    def list_habits(self, user_email):
        self.listed = True
        return super().list_habits(user_email)


def test_migration_failure_stops_before_filling():
    db = _new_db()
    _add_habit(db, "Walk", "interval", increment=1)
    repo = _MigrationFailsRepository(db)

    with pytest.raises(SyncStepError) as excinfo:
        sync_habits(repo, EMAIL, today=date(2023, 5, 2))

    assert excinfo.value.step == "migrate"
    assert repo.listed is False


class _OneHabitCorruptRepository(HabitRepository):
    def max_instance_date(self, user_email, habit_name):
        if habit_name == "Alpha":
            raise ValueError("unreadable due date in habit_instances")
        return super().max_instance_date(user_email, habit_name)


def test_unexpected_error_in_one_habit_does_not_skip_later_habits():
    db = _new_db()
    _add_habit(db, "Alpha", "interval", increment=1)
    _add_habit(db, "Beta", "interval", increment=1)

    report = sync_habits(_OneHabitCorruptRepository(db), EMAIL, today=date(2023, 5, 2), days_ahead=1)

    assert [r.habit_name for r in report.generation_failures] == ["Alpha"]
    assert _dates(db, HabitInstance, HabitInstance.due_date, "Beta") == ["2023-05-02", "2023-05-03"]
