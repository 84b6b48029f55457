"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health and auth routers are open (the auth
routes check sessions themselves where needed); the admin router
requires an administrator session.
"""

from fastapi import APIRouter, Depends

from flortune.api.admin import router as admin_router
from flortune.api.auth import router as auth_router
from flortune.api.health import router as health_router
from flortune.auth.dependencies import require_admin

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Administrator-only routes
api_router.include_router(admin_router, tags=["admin"], dependencies=[Depends(require_admin)])
