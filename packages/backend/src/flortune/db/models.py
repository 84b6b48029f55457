"""SQLAlchemy ORM models — the two identity stores.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic migrations mirror these definitions.

Key concepts:
- Administrators and Profiles are separate tables and separate authorities.
  A Profile may carry role="admin" without being an Administrator.
- Profile.password_hash is nullable: NULL means the account signs in with
  Google only and can never pass a password check.
- UUID primary keys via the generic Uuid type (native on PostgreSQL,
  CHAR(32) on SQLite for tests).
- Python-side defaults for timestamps so they are populated right after flush,
  with server_default kept for raw SQL inserts.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Uuid, false, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Administrator(Base):
    """A back-office administrator.

    Learn: Rows are only ever created by the secret-gated bootstrap
    operation. Administrators can sign in but are never given a token
    for the row-level-secured data store.
    """

    __tablename__ = "admins"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class Profile(Base):
    """A regular application user.

    Learn: Created at signup (with a password hash) or lazily on the
    first Google sign-in (password_hash stays NULL). `role` is a tag
    for the application's own admin screens and is independent of the
    admins table.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # NULL for OAuth-only accounts
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="user", server_default="user"
    )  # user | admin
    plan_id: Mapped[str] = mapped_column(String(50), nullable=False)
    has_seen_welcome: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
