"""Back-office API — user management for administrators.

Learn: Mounted behind require_admin in api/__init__.py, so every route
here already has an administrator (or a profile tagged admin) session.
Creating a user with role="admin" only sets the profile's role tag;
it never creates an Administrator row.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from flortune.auth.dependencies import get_identity_store, require_admin
from flortune.auth.errors import IdentityConflict
from flortune.auth.password import hash_password
from flortune.auth.store import IdentityStore
from flortune.config import settings
from flortune.schemas.auth import ClientSession, ProfileRead, UserCreate

logger = structlog.get_logger()

router = APIRouter(prefix="/admin")


@router.post("/users", response_model=ProfileRead, status_code=201)
async def create_user(
    body: UserCreate,
    store: IdentityStore = Depends(get_identity_store),
    session: ClientSession = Depends(require_admin),
):
    """Create a confirmed password profile with the chosen role tag."""
    full_name = body.full_name.strip()
    try:
        profile = await store.create_profile(
            email=body.email,
            display_name=full_name.split()[0],
            full_name=full_name,
            password_hash=hash_password(body.password),
            plan_id=settings.default_plan_id,
            role=body.role,
        )
    except IdentityConflict:
        raise HTTPException(status_code=409, detail="Email already registered")

    logger.info(
        "admin.user_created",
        subject_id=str(profile.id),
        role=profile.role,
        created_by=session.user.id,
    )
    return profile
