import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from hasta.config import Settings
from hasta.context import get_settings
from hasta.database import get_db
from hasta.models import User
from hasta.schemas import LoginPayload, RegisterPayload
from hasta.security import (
    COOKIE_NAME,
    create_token,
    get_current_user,
    get_optional_user,
)
from hasta.services import identity

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)


# =====================================================
# HELPERS
# =====================================================

def _set_session_cookie(response: Response, user: User, settings: Settings) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=create_token(user, settings),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
        path="/",
        max_age=60 * 60 * 24 * settings.access_token_expire_days,
    )


def _serialize_user(user: User, merged_lines: int = 0) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role,
        "is_anonymous": user.is_anonymous,
        "merged_cart_lines": merged_lines,
    }


def _merge_previous_session(db: Session, previous: Optional[User], user: User) -> int:
    """Fold the anonymous cart of the calling session into `user`."""
    if previous is None or not previous.is_anonymous or previous.id == user.id:
        return 0
    return identity.merge_carts(db, previous.id, user.id)


# =====================================================
# SESSION
# =====================================================

@router.post("/session")
def start_session(
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: Optional[User] = Depends(get_optional_user),
):
    """Every visitor gets an identity; anonymous until they sign in."""
    if current is not None:
        return _serialize_user(current)

    user = identity.create_anonymous_user(db)
    _set_session_cookie(response, user, settings)
    return _serialize_user(user)


# =====================================================
# REGISTER
# =====================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterPayload,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: Optional[User] = Depends(get_optional_user),
):
    user = identity.register_user(
        db,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        phone=payload.phone,
    )

    merged = _merge_previous_session(db, current, user)
    _set_session_cookie(response, user, settings)
    return _serialize_user(user, merged)


# =====================================================
# LOGIN
# =====================================================

@router.post("/login")
def login(
    payload: LoginPayload,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: Optional[User] = Depends(get_optional_user),
):
    user = identity.authenticate(db, payload.email, payload.password)

    merged = _merge_previous_session(db, current, user)
    _set_session_cookie(response, user, settings)

    logger.info("Signed in | user_id=%s | merged_lines=%s", user.id, merged)
    return _serialize_user(user, merged)


# =====================================================
# CURRENT USER
# =====================================================

@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return _serialize_user(user)


# =====================================================
# LOGOUT
# =====================================================

@router.post("/logout")
def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
    )
    return {"message": "Logged out"}
