from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date


from db.repository import DATE_CONDITIONS, HabitRepository
from utils.datetime_utils import as_date, format_date, today_local

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    migrated: list[tuple[str, date]] = field(default_factory=list)
    ok: bool = True
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.migrated)


def migrate_instances(
    repo: HabitRepository,
    user_email: str,
    date_condition: str = "=",
    date_value: date | str | None = None,
) -> MigrationResult:
    """
    Turn due instances into placeholder progress rows.

    Every instance whose due date satisfies ``due_date <date_condition> date_value``
    gets a progress row (0 progress, not completed, streak 0) unless one already
    exists, and is then deleted. The insert and delete for one instance commit
    together, so a failure leaves the instance in place for the next run.
    Failures are logged and reported on the result, not raised.
    """
    if date_condition not in DATE_CONDITIONS:
        raise ValueError(f"Unsupported date condition: {date_condition!r}")
    target = as_date(date_value) if date_value is not None else today_local()

    result = MigrationResult()
    try:
        instances = repo.find_instances(user_email, date_condition, target)
        for habit_name, due_date in instances:
            repo.insert_progress_if_absent(user_email, habit_name, due_date)
            repo.delete_instance(user_email, habit_name, due_date)
            repo.commit()
            result.migrated.append((habit_name, due_date))
            logger.info(f"Migrated habit '{habit_name}' due on {format_date(due_date)} for {user_email}")
    except Exception as e:
        repo.rollback()
        result.ok = False
        result.error = str(e)
        logger.warning(f"Instance migration failed for {user_email}: {e}")
        return result

    logger.info(
        f"Migrated {result.count} instances for {user_email} (due_date {date_condition} {format_date(target)})"
    )
    return result
