import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.errors import HabitAlreadyExistsError, HabitNotFoundError
from services.habit_service import (
    HabitDefinition,
    create_habit,
    delete_habit,
    get_habit_days,
    get_habit_interval,
    get_habits_for_date,
    habit_to_dict,
    list_habit_summaries,
    update_habit,
)
from utils.datetime_utils import parse_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/habits", tags=["habits"])


class HabitRequest(BaseModel):
    habit_name: str = Field(min_length=1, max_length=255)
    habit_description: Optional[str] = ""
    habit_type: str
    habit_color: str
    schedule_option: str
    interval_days: Optional[int] = None
    selected_days: list[str] = []
    goal_value: Optional[float] = None
    goal_unit: Optional[str] = None

    def to_definition(self, habit_name: Optional[str] = None) -> HabitDefinition:
        return HabitDefinition(
            habit_name=habit_name or self.habit_name,
            habit_description=self.habit_description or "",
            habit_type=self.habit_type,
            habit_color=self.habit_color,
            schedule_option=self.schedule_option,
            interval_days=self.interval_days,
            selected_days=list(self.selected_days or []),
            goal_value=self.goal_value,
            goal_unit=self.goal_unit,
        )


class HabitUpdateRequest(HabitRequest):
    habit_name: Optional[str] = None


@router.get("")
def list_habits(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return list_habit_summaries(db, user.email)


@router.post("", status_code=201)
def add_habit(req: HabitRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        habit = create_habit(db, user.email, req.to_definition())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HabitAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error adding habit for {user.email}: {e}")
        raise HTTPException(status_code=500, detail="Error adding habit")
    return {"message": "Habit added successfully", "habit": habit_to_dict(habit)}


@router.get("/date/{day}")
def habits_for_date(day: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        requested = parse_date(day)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format")
    return get_habits_for_date(db, user.email, requested)


@router.put("/{habit_name}")
def edit_habit(
    habit_name: str,
    req: HabitUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        habit = update_habit(db, user.email, req.to_definition(habit_name))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HabitNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating habit '{habit_name}' for {user.email}: {e}")
        raise HTTPException(status_code=500, detail="Error updating habit")
    return {"message": "Habit updated successfully", "habit": habit_to_dict(habit)}


@router.delete("/{habit_name}")
def remove_habit(habit_name: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        delete_habit(db, user.email, habit_name)
    except HabitNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "message": "Habit deleted successfully"}


@router.get("/{habit_name}/days")
def habit_days(habit_name: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [{"day": day} for day in get_habit_days(db, user.email, habit_name)]


@router.get("/{habit_name}/interval")
def habit_interval(habit_name: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"increment": get_habit_interval(db, user.email, habit_name)}
