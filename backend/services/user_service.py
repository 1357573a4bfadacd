import logging
import re

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth.utils import hash_password, normalize_email, verify_password
from db.models import Habit, HabitProgress, User
from services.errors import UserAlreadyExistsError, UserNotFoundError
from services.habit_service import habit_to_dict
from services.progress_service import progress_to_dict

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[\w\-.]+@([\w-]+\.)+[\w-]{2,}$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")


def validate_signup(email: str, password: str, username: str) -> None:
    if not email or not password or not username:
        raise ValueError("Missing required fields")
    if not EMAIL_RE.match(email):
        raise ValueError("Invalid email format")
    if len(password) < 6:
        raise ValueError("Password must be at least 6 characters long")
    if len(username) < 3:
        raise ValueError("Username must be at least 3 characters long")
    if not USERNAME_RE.match(username):
        raise ValueError("Username can only contain letters, numbers, and underscores")


def create_user(db: Session, email: str, password: str, username: str) -> User:
    email = normalize_email(email)
    username = (username or "").strip()
    validate_signup(email, password, username)

    if db.query(User).filter(User.email == email).first():
        raise UserAlreadyExistsError("email")
    if db.query(User).filter(User.username == username).first():
        raise UserAlreadyExistsError("username")

    user = User(email=email, username=username, password_hash=hash_password(password), token_version=0)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {email}")
    return user


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or not verify_password(password or "", user.password_hash):
        return None
    return user


def change_password(db: Session, user: User, old_password: str, new_password: str) -> User:
    if not verify_password(old_password or "", user.password_hash):
        raise ValueError("Incorrect old password")
    if len(new_password or "") < 6:
        raise ValueError("Password must be at least 6 characters long")
    user.password_hash = hash_password(new_password)
    # Invalidate every token issued before the change.
    user.token_version = int(user.token_version or 0) + 1
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, email: str) -> None:
    """Delete a user and everything they own as one all-or-nothing transaction."""
    try:
        deleted = db.query(User).filter(User.email == email).delete(synchronize_session=False)
        if not deleted:
            db.rollback()
            raise UserNotFoundError(f"User with email {email} not found.")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting user data for {email}: {e}")
        raise
    logger.info(f"Deleted all data for user {email}")


def export_user_data(db: Session, user: User) -> dict:
    habits = db.query(Habit).filter(Habit.user_email == user.email).order_by(Habit.habit_name.asc()).all()
    progress = (
        db.query(HabitProgress)
        .filter(HabitProgress.user_email == user.email)
        .order_by(HabitProgress.progress_date.asc(), HabitProgress.habit_name.asc())
        .all()
    )
    return {
        "user": {"email": user.email, "username": user.username},
        "habits": [habit_to_dict(h) for h in habits],
        "progress": [progress_to_dict(p) for p in progress],
    }
