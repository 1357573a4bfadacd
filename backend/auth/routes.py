import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from auth.models import LoginRequest, LoginResponse, SignupRequest, UpdatePasswordRequest, UserResponse
from auth.utils import create_token, get_current_user
from config import settings
from db.database import get_db
from db.models import User
from db.repository import HabitRepository
from services.errors import UserAlreadyExistsError, UserNotFoundError
from services.sync_service import sync_habits
from services.user_service import authenticate, change_password, create_user, delete_user, export_user_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _set_session_cookie(response: Response, token: str, *, max_age_seconds: int) -> None:
    samesite = (settings.AUTH_COOKIE_SAMESITE or "lax").strip().lower()
    if samesite not in {"strict", "lax", "none"}:
        samesite = "lax"
    response.set_cookie(
        key=(settings.AUTH_COOKIE_NAME or "habit_session").strip() or "habit_session",
        value=token,
        httponly=bool(settings.AUTH_COOKIE_HTTPONLY),
        secure=bool(settings.AUTH_COOKIE_SECURE),
        samesite=samesite,  # type: ignore[arg-type]
        path=settings.AUTH_COOKIE_PATH or "/",
        max_age=max(int(max_age_seconds), 1),
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=(settings.AUTH_COOKIE_NAME or "habit_session").strip() or "habit_session",
        path=settings.AUTH_COOKIE_PATH or "/",
    )


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def signup(req: SignupRequest, db: Session = Depends(get_db)):
    try:
        return create_user(db, req.email, req.password, req.username)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UserAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/login", response_model=LoginResponse)
def login(req: LoginRequest, response: Response, db: Session = Depends(get_db)):
    if not req.email or not req.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    user = authenticate(db, req.email, req.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    synced = False
    if settings.SYNC_ON_LOGIN:
        # Login succeeds even when the schedule could not be brought up to date.
        try:
            sync_habits(HabitRepository(db), user.email)
            synced = True
        except Exception as e:
            db.rollback()
            logger.warning(f"Habit sync on login failed for {user.email}: {e}")

    token = create_token(user.email, token_version=user.token_version)
    _set_session_cookie(response, token, max_age_seconds=max(int(settings.JWT_EXPIRY_HOURS), 1) * 3600)
    return LoginResponse(access_token=token, user=UserResponse.model_validate(user), synced=synced)


@router.post("/logout")
def logout(response: Response):
    _clear_session_cookie(response)
    return {"status": "ok"}


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/update-password")
def update_password(
    req: UpdatePasswordRequest,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        user = change_password(db, user, req.old_password, req.new_password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    token = create_token(user.email, token_version=user.token_version)
    _set_session_cookie(response, token, max_age_seconds=max(int(settings.JWT_EXPIRY_HOURS), 1) * 3600)
    return {"message": "Password updated successfully", "access_token": token}


@router.delete("/me")
def delete_account(response: Response, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    email = user.email
    try:
        delete_user(db, email)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting user data for {email}: {e}")
        raise HTTPException(status_code=500, detail="Server error deleting user data")
    _clear_session_cookie(response)
    return {"success": True, "message": f"All data for user with email {email} deleted successfully."}


@router.get("/export")
def export_data(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return export_user_data(db, user)
