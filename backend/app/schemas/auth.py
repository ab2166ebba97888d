from datetime import datetime

from pydantic import Field

from app.db.models import UserRole
from app.schemas.common import CamelModel


class LoginRequest(CamelModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)


class AuthUser(CamelModel):
    id: str
    username: str
    role: UserRole


class LoginResponse(CamelModel):
    user: AuthUser
    logged_in_at: datetime


class LogoutResponse(CamelModel):
    status: str
