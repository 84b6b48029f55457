"""Resolved identities.

Learn: Whichever store authenticated the principal, the rest of the
system sees a single `Identity`. The `kind` field says which authority
resolved it (the admins table or the profiles table); `role` is the
role tag the application shows and checks. For administrators both are
"admin". For profiles, `kind` is always "user" while `role` mirrors the
profile's own column, so a promoted profile is still a profile.

An Identity only lives for the length of a login or a refresh. What
survives is its `snapshot()`, embedded into the signed session token.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import inspect

from flortune.db.models import Administrator, Profile

# Never copied into a snapshot.
_SECRET_FIELDS = frozenset({"password_hash"})


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class Identity:
    kind: Role
    subject_id: str
    email: str
    display_name: str
    avatar_url: Optional[str]
    role: Role
    profile: dict[str, Any] = field(default_factory=dict)
    provider: str = "email"

    @property
    def is_administrator(self) -> bool:
        return self.kind is Role.ADMIN

    @classmethod
    def from_administrator(cls, admin: Administrator, provider: str = "email") -> "Identity":
        return cls(
            kind=Role.ADMIN,
            subject_id=str(admin.id),
            email=admin.email,
            display_name=admin.display_name,
            avatar_url=None,
            role=Role.ADMIN,
            profile=_row_snapshot(admin),
            provider=provider,
        )

    @classmethod
    def from_profile(cls, profile: Profile, provider: str = "email") -> "Identity":
        return cls(
            kind=Role.USER,
            subject_id=str(profile.id),
            email=profile.email,
            display_name=profile.display_name or profile.full_name or profile.email,
            avatar_url=profile.avatar_url,
            role=Role(profile.role),
            profile=_row_snapshot(profile),
            provider=provider,
        )

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe form embedded in the session token."""
        return {
            "kind": self.kind.value,
            "subject_id": self.subject_id,
            "email": self.email,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "role": self.role.value,
            "provider": self.provider,
            "profile": dict(self.profile),
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "Identity":
        return cls(
            kind=Role(data["kind"]),
            subject_id=data["subject_id"],
            email=data["email"],
            display_name=data["display_name"],
            avatar_url=data.get("avatar_url"),
            role=Role(data["role"]),
            profile=dict(data.get("profile") or {}),
            provider=data.get("provider", "email"),
        )


def _row_snapshot(row: Any) -> dict[str, Any]:
    data = {}
    for attr in inspect(row).mapper.column_attrs:
        if attr.key in _SECRET_FIELDS:
            continue
        data[attr.key] = _json_safe(getattr(row, attr.key))
    return data


def _json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
