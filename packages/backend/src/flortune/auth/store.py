"""Identity store gateway — narrow read/upsert access to admins and profiles.

Learn: Everything the auth layer needs from the database goes through
this class: lookups by email or id, plain inserts for signup and admin
bootstrap, and one idempotent insert for first-time Google sign-ins.

Concurrency model: there is no locking here. Two first logins for the
same email race to insert the same deterministic primary key with
INSERT ... ON CONFLICT DO NOTHING; the loser's insert is a no-op and
both re-read the winning row. On a dialect without native upsert we
fall back to the unique constraint: insert, catch IntegrityError,
re-read.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flortune.auth.errors import IdentityConflict, ProvisioningError
from flortune.auth.identity import normalize_email
from flortune.db.models import Administrator, Profile

PROFILE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "profiles.flortune.app")

# Fields a signed-in user may change on their own profile.
EDITABLE_PROFILE_FIELDS = frozenset(
    {"display_name", "full_name", "avatar_url", "has_seen_welcome"}
)


def fit_column(column, value: Optional[str]) -> Optional[str]:
    """Trim a value to its VARCHAR column width (provider names are unbounded)."""
    if value is None:
        return None
    return value[: column.type.length]


def provisioned_profile_id(email: str) -> uuid.UUID:
    """Primary key for a profile provisioned from an external provider."""
    return uuid.uuid5(PROFILE_NAMESPACE, normalize_email(email))


class IdentityStore:
    """Read/write access to the two identity tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Lookups ────────────────────────────────────────

    async def get_admin_by_email(self, email: str) -> Optional[Administrator]:
        result = await self.db.execute(
            select(Administrator).where(Administrator.email == normalize_email(email))
        )
        return result.scalars().first()

    async def get_profile_by_email(self, email: str) -> Optional[Profile]:
        result = await self.db.execute(
            select(Profile)
            .where(Profile.email == normalize_email(email))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_admin(self, admin_id: str) -> Optional[Administrator]:
        key = _as_uuid(admin_id)
        return await self.db.get(Administrator, key) if key else None

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        key = _as_uuid(profile_id)
        return await self.db.get(Profile, key) if key else None

    async def email_registered(self, email: str) -> bool:
        """True when either store already holds this email."""
        if await self.get_admin_by_email(email):
            return True
        return await self.get_profile_by_email(email) is not None

    # ─── Inserts ────────────────────────────────────────

    async def create_profile(
        self,
        *,
        email: str,
        display_name: str,
        plan_id: str,
        password_hash: Optional[str] = None,
        full_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        role: str = "user",
    ) -> Profile:
        """Create a profile at signup. Refuses emails used by either store."""
        email = normalize_email(email)
        if await self.email_registered(email):
            raise IdentityConflict(email)

        profile = Profile(
            email=email,
            password_hash=password_hash,
            display_name=fit_column(Profile.__table__.c.display_name, display_name),
            full_name=fit_column(Profile.__table__.c.full_name, full_name),
            avatar_url=avatar_url,
            role=role,
            plan_id=plan_id,
            has_seen_welcome=False,
        )
        self.db.add(profile)
        await self._commit_or_conflict(email)
        return profile

    async def create_admin(
        self, *, email: str, password_hash: str, display_name: str
    ) -> Administrator:
        email = normalize_email(email)
        if await self.email_registered(email):
            raise IdentityConflict(email)

        admin = Administrator(
            email=email,
            password_hash=password_hash,
            display_name=fit_column(Administrator.__table__.c.display_name, display_name),
        )
        self.db.add(admin)
        await self._commit_or_conflict(email)
        return admin

    async def provision_profile(
        self,
        *,
        email: str,
        display_name: str,
        avatar_url: str,
        plan_id: str,
    ) -> Profile:
        """Idempotently create an OAuth-only profile and return the stored row.

        Learn: The row is keyed on provisioned_profile_id(email), so every
        concurrent attempt for one email targets the same primary key, and
        the unique email constraint catches anything else. Whoever loses
        the race gets the winner's row back instead of an error.
        """
        email = normalize_email(email)
        now = datetime.now(timezone.utc)
        values = {
            "id": provisioned_profile_id(email),
            "email": email,
            "password_hash": None,
            "display_name": fit_column(Profile.__table__.c.display_name, display_name),
            "full_name": fit_column(Profile.__table__.c.full_name, display_name),
            "avatar_url": avatar_url,
            "role": "user",
            "plan_id": plan_id,
            "has_seen_welcome": False,
            "created_at": now,
            "updated_at": now,
        }

        try:
            await self._insert_ignoring_conflicts(values)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ProvisioningError(f"Could not provision profile for {email}: {e}") from e

        profile = await self.get_profile_by_email(email)
        if profile is None:
            raise ProvisioningError(f"Profile for {email} missing after provisioning")
        return profile

    # ─── Updates ────────────────────────────────────────

    async def update_profile(self, profile: Profile, **changes) -> Profile:
        """Apply self-service edits. Only EDITABLE_PROFILE_FIELDS are honoured."""
        unknown = set(changes) - EDITABLE_PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            setattr(profile, key, value)
        profile.updated_at = datetime.now(timezone.utc)
        await self.db.commit()
        return profile

    # ─── Internals ──────────────────────────────────────

    async def _insert_ignoring_conflicts(self, values: dict) -> None:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(Profile).values(**values).on_conflict_do_nothing()
        elif dialect == "sqlite":
            stmt = sqlite_insert(Profile).values(**values).on_conflict_do_nothing()
        else:
            try:
                async with self.db.begin_nested():
                    await self.db.execute(insert(Profile).values(**values))
            except IntegrityError:
                pass  # lost the race; the caller re-reads the winner
            return
        await self.db.execute(stmt)

    async def _commit_or_conflict(self, email: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise IdentityConflict(email) from e


def _as_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
