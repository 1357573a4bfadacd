from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.stats_service import (
    average_progress,
    completion_rate,
    longest_streak,
    progress_history,
    streak_history,
)

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/{habit_name}/longest-streak")
def get_longest_streak(habit_name: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"longest_streak": longest_streak(db, user.email, habit_name)}


@router.get("/{habit_name}/completion-rate")
def get_completion_rate(habit_name: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"completion_rate": completion_rate(db, user.email, habit_name)}


@router.get("/{habit_name}/average-progress")
def get_average_progress(habit_name: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"average_progress": average_progress(db, user.email, habit_name)}


@router.get("/{habit_name}/streak")
def get_streak_history(
    habit_name: str,
    range: str = Query(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return streak_history(db, user.email, habit_name, range)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{habit_name}/progress")
def get_progress_history(
    habit_name: str,
    range: str = Query(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return progress_history(db, user.email, habit_name, range)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
