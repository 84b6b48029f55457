"""Pydantic schemas for the auth API.

Learn: Pydantic v2 models validate request/response data. Separate
request schemas (input) from read schemas (output) for clean APIs.
ClientSession is also the return type of SessionMaterializer, so route
handlers and dependencies share one session shape.
"""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from flortune.auth.identity import Role


def _clean_name(value: str) -> str:
    """Collapse whitespace; blank names are rejected."""
    value = " ".join(value.split())
    if len(value) < 2:
        raise ValueError("Name must not be blank")
    return value


# ─── Credentials ────────────────────────────────────────

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8)
    confirm_password: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _clean_name(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class AdminSetupRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8)
    display_name: str = Field(default="Administrator", min_length=1, max_length=100)
    secret_code: str = Field(..., min_length=1)


class UserCreate(BaseModel):
    """Admin-created user (back-office "new user" form)."""
    full_name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8)
    role: Literal["user", "admin"] = "user"

    @field_validator("full_name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _clean_name(value)


class TokenResponse(BaseModel):
    session_token: str
    token_type: str = "bearer"
    expires_at: datetime


# ─── Profiles ───────────────────────────────────────────

class ProfileRead(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str
    plan_id: str
    has_seen_welcome: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminRead(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    """Self-service profile edits carried by a session refresh."""
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    full_name: Optional[str] = Field(None, max_length=200)
    avatar_url: Optional[str] = Field(None, max_length=500)
    has_seen_welcome: Optional[bool] = None


class SessionRefreshRequest(BaseModel):
    update: bool = False
    profile: Optional[ProfileUpdate] = None


# ─── Sessions ───────────────────────────────────────────

class SessionUser(BaseModel):
    id: str
    email: str
    name: str
    image: Optional[str] = None
    role: Role
    kind: Role
    provider: str = "email"
    profile: dict[str, Any] = Field(default_factory=dict)


class ClientSession(BaseModel):
    """What the rest of the application sees of a signed-in user."""
    user: SessionUser
    expires: datetime
    downstream_access_token: Optional[str] = None

    @property
    def is_administrator(self) -> bool:
        return self.user.kind is Role.ADMIN


class OAuthAuthorizeResponse(BaseModel):
    url: str
    state: str
