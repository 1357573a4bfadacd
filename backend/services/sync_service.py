"""
Brings a user's habit schedule up to date.

A sync run is the fixed sequence below. Each step reads what the previous one
wrote, so the steps must run one after another and never concurrently:

1. migrate  - realise every instance due today or earlier into progress rows
2. fill     - backfill placeholder rows for gaps no instance covered
3. generate - top up the instance horizon for every habit

Migration and filling failures abort the run. Generation is best-effort per
habit: one failing habit is logged and the remaining habits still generate.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

from db.repository import HabitRepository
from services.errors import HabitTrackerError, InvalidHabitDataError
from services.instance_generator import GenerationResult, generate_instances_for_habit
from services.instance_migrator import MigrationResult, migrate_instances
from services.progress_filler import fill_missed_progress
from utils.datetime_utils import today_local

logger = logging.getLogger(__name__)


class SyncStepError(HabitTrackerError):
    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"Sync step '{step}' failed: {message}")


@dataclass
class SyncReport:
    user_email: str
    today: date
    days_ahead: int | None = None
    completed_steps: list[str] = field(default_factory=list)
    migration: MigrationResult | None = None
    filled: int = 0
    generation: list[GenerationResult] = field(default_factory=list)

    @property
    def generation_failures(self) -> list[GenerationResult]:
        return [r for r in self.generation if not r.ok]


def load_habits(repo: HabitRepository, user_email: str) -> list:
    habits = repo.list_habits(user_email)
    if isinstance(habits, (str, bytes)) or not isinstance(habits, Sequence):
        raise InvalidHabitDataError()
    return list(habits)


def _migrate_step(repo: HabitRepository, report: SyncReport) -> None:
    result = migrate_instances(repo, report.user_email, "<=", report.today)
    report.migration = result
    if not result.ok:
        raise SyncStepError("migrate", result.error or "unknown error")


def _fill_step(repo: HabitRepository, report: SyncReport) -> None:
    habits = load_habits(repo, report.user_email)
    report.filled = fill_missed_progress(repo, report.user_email, today=report.today, habits=habits)


def _generate_step(repo: HabitRepository, report: SyncReport) -> None:
    habits = [(h.habit_name, h.schedule_option) for h in load_habits(repo, report.user_email)]
    for habit_name, schedule_option in habits:
        result = generate_instances_for_habit(
            repo,
            report.user_email,
            habit_name,
            schedule_option,
            days_ahead=report.days_ahead,
            today=report.today,
        )
        report.generation.append(result)


SYNC_STEPS = (
    ("migrate", _migrate_step),
    ("fill", _fill_step),
    ("generate", _generate_step),
)


def sync_habits(
    repo: HabitRepository,
    user_email: str,
    today: date | None = None,
    days_ahead: int | None = None,
) -> SyncReport:
    report = SyncReport(user_email=user_email, today=today or today_local(), days_ahead=days_ahead)
    try:
        for step_name, step in SYNC_STEPS:
            step(repo, report)
            report.completed_steps.append(step_name)
    except Exception as e:
        logger.error(f"Error synchronizing habits for {user_email}: {e}")
        raise

    failures = report.generation_failures
    if failures:
        names = ", ".join(r.habit_name for r in failures)
        logger.warning(f"Instance generation failed for {len(failures)} habit(s) of {user_email}: {names}")
    logger.info(f"Habits synchronized for user {user_email}")
    return report
