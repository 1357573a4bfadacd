import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from db.repository import HabitRepository
from services.errors import ProgressNotFoundError
from services.progress_service import (
    get_habit_progress_value,
    get_habit_streak,
    get_progress_for_date,
    progress_to_dict,
    record_progress,
)
from utils.datetime_utils import parse_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/progress", tags=["progress"])


class ProgressRequest(BaseModel):
    habit_name: str = Field(min_length=1)
    progress: float = Field(ge=0)


def _parse_day(day: str):
    try:
        return parse_date(day)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format")


@router.post("")
def log_progress(req: ProgressRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        row = record_progress(HabitRepository(db), user.email, req.habit_name, req.progress)
    except ProgressNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating progress for '{req.habit_name}' ({user.email}): {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"message": "Progress updated", "progress": progress_to_dict(row)}


@router.get("/streak/{habit_name}/{day}")
def habit_streak(habit_name: str, day: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"streak": get_habit_streak(HabitRepository(db), user.email, habit_name, _parse_day(day))}


@router.get("/{day}")
def progress_for_date(day: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_progress_for_date(db, user.email, _parse_day(day))


@router.get("/{habit_name}/{day}")
def habit_progress(habit_name: str, day: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"progress": get_habit_progress_value(HabitRepository(db), user.email, habit_name, _parse_day(day))}
