from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base, enable_sqlite_pragmas  # noqa: E402
from db.models import Habit, HabitProgress, User  # noqa: E402
from services.stats_service import (  # noqa: E402
    average_progress,
    completion_rate,
    longest_streak,
    progress_history,
    streak_history,
)

EMAIL = "stats@example.com"
TODAY = date(2023, 3, 15)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    enable_sqlite_pragmas(engine)
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    db.add(User(email=EMAIL, username="stats_user", password_hash="hash"))
    db.add(
        Habit(
            user_email=EMAIL,
            habit_name="Read",
            habit_type="build",
            habit_color="#224466",
            schedule_option="interval",
            goal_value=10,
        )
    )
    db.commit()
    rows = [
        (date(2023, 1, 20), 10, True, 1),
        (date(2023, 2, 28), 4, False, 0),
        (date(2023, 3, 1), 12, True, 1),
        (date(2023, 3, 13), 10, True, 2),
        (date(2023, 3, 14), 11, True, 3),
        (date(2023, 3, 15), 2, False, 0),
    ]
    for day, progress, completed, streak in rows:
        db.add(
            HabitProgress(
                user_email=EMAIL,
                habit_name="Read",
                progress_date=day,
                progress=progress,
                completed=completed,
                streak=streak,
            )
        )
    db.commit()
    return db


def test_reductions():
    db = _new_db()

    assert longest_streak(db, EMAIL, "Read") == 3
    assert completion_rate(db, EMAIL, "Read") == 67
    assert average_progress(db, EMAIL, "Read") == 8


def test_reductions_without_rows_are_zero():
    db = _new_db()

    assert longest_streak(db, EMAIL, "Missing") == 0
    assert completion_rate(db, EMAIL, "Missing") == 0
    assert average_progress(db, EMAIL, "Missing") == 0


def test_streak_history_for_current_week():
    db = _new_db()

    history = streak_history(db, EMAIL, "Read", "week", today=TODAY)

    assert history == [
        {"progress_date": "2023-03-13", "streak": 2},
        {"progress_date": "2023-03-14", "streak": 3},
        {"progress_date": "2023-03-15", "streak": 0},
    ]


def test_progress_history_for_current_month():
    db = _new_db()

    history = progress_history(db, EMAIL, "Read", "month", today=TODAY)

    assert [row["progress_date"] for row in history] == ["2023-03-01", "2023-03-13", "2023-03-14", "2023-03-15"]


def test_progress_history_for_year_averages_per_month():
    db = _new_db()

    history = progress_history(db, EMAIL, "Read", "year", today=TODAY)

    assert history == [
        {"month": 1, "avg_progress": 10.0},
        {"month": 2, "avg_progress": 4.0},
        {"month": 3, "avg_progress": pytest.approx(8.75)},
    ]


def test_unknown_ranges_are_rejected():
    db = _new_db()

    with pytest.raises(ValueError):
        streak_history(db, EMAIL, "Read", "year", today=TODAY)
    with pytest.raises(ValueError):
        progress_history(db, EMAIL, "Read", "decade", today=TODAY)
