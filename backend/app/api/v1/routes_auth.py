from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.security import verify_password
from app.db.models import User
from app.db.session import get_db
from app.schemas.auth import AuthUser, LoginRequest, LoginResponse, LogoutResponse

router = APIRouter()
logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@router.post("/auth/login", response_model=LoginResponse)
def login(req: LoginRequest, request: Request, db: Session = Depends(get_db)) -> LoginResponse:
    user = db.execute(select(User).where(User.username == req.username)).scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")

    valid, new_hash = verify_password(req.password, user.password_hash)
    if not valid:
        logger.info("auth_login_failed", username=req.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")

    if new_hash:
        user.password_hash = new_hash
    user.last_login_at = _now()
    user.updated_at = user.last_login_at
    db.commit()

    request.session["user_id"] = str(user.id)
    request.session["username"] = user.username
    request.session["role"] = user.role.value
    logger.info("auth_login", user_id=str(user.id), role=user.role.value)

    return LoginResponse(
        user=AuthUser(id=str(user.id), username=user.username, role=user.role),
        logged_in_at=user.last_login_at,
    )


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, current_user: CurrentUser = Depends(get_current_user)) -> LogoutResponse:
    request.session.clear()
    logger.info("auth_logout", user_id=str(current_user.id))
    return LogoutResponse(status="ok")


@router.get("/auth/me", response_model=AuthUser)
def me(current_user: CurrentUser = Depends(get_current_user)) -> AuthUser:
    return AuthUser(id=str(current_user.id), username=current_user.username, role=current_user.role)
