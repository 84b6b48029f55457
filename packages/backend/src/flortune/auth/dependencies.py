"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. There is no
ambient session object anywhere in the app: each request reads its own
token, materializes its own ClientSession, and passes it explicitly to
whatever needs it.

The session token is accepted from two places:
1. Authorization: Bearer <token> (API clients, CLI)
2. The HttpOnly session cookie set at login (browser)
"""

from datetime import timedelta
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession

from flortune.auth.downstream import DownstreamTokenMinter
from flortune.auth.identity import Role
from flortune.auth.jwt import SessionTokenIssuer
from flortune.auth.oauth import GoogleOAuthClient, OAuthIdentityLinker
from flortune.auth.session import SessionMaterializer
from flortune.auth.store import IdentityStore
from flortune.config import settings
from flortune.db.engine import get_db
from flortune.schemas.auth import ClientSession


def get_identity_store(db: AsyncSession = Depends(get_db)) -> IdentityStore:
    return IdentityStore(db)


def get_token_issuer() -> SessionTokenIssuer:
    return SessionTokenIssuer(
        settings.session_secret,
        algorithm=settings.jwt_algorithm,
        max_age=timedelta(days=settings.session_max_age_days),
    )


def get_downstream_minter() -> DownstreamTokenMinter:
    return DownstreamTokenMinter(
        settings.downstream_jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(minutes=settings.downstream_token_expire_minutes),
    )


def get_session_materializer(
    issuer: SessionTokenIssuer = Depends(get_token_issuer),
    minter: DownstreamTokenMinter = Depends(get_downstream_minter),
) -> SessionMaterializer:
    return SessionMaterializer(issuer, minter)


def get_oauth_client() -> Optional[GoogleOAuthClient]:
    """Google client, or None when OAuth credentials aren't configured."""
    if not settings.oauth_enabled:
        return None
    return GoogleOAuthClient(settings.google_client_id, settings.google_client_secret)


def get_oauth_linker(
    store: IdentityStore = Depends(get_identity_store),
) -> OAuthIdentityLinker:
    return OAuthIdentityLinker(
        store,
        default_plan_id=settings.default_plan_id,
        avatar_placeholder_url=settings.avatar_placeholder_url,
    )


def get_session_token(
    authorization: Optional[str] = Header(None),
    session_cookie: Optional[str] = Cookie(None, alias=settings.session_cookie_name),
) -> Optional[str]:
    """Raw session token from the Bearer header, falling back to the cookie."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return session_cookie


async def get_current_session_optional(
    token: Optional[str] = Depends(get_session_token),
    materializer: SessionMaterializer = Depends(get_session_materializer),
) -> Optional[ClientSession]:
    """Current session, or None when there is no valid token.

    Learn: This is the "soft" auth dependency. Expired and forged tokens
    end up here as None, same as no token at all.
    """
    return materializer.materialize(token)


async def get_current_session(
    session: Optional[ClientSession] = Depends(get_current_session_optional),
) -> ClientSession:
    """Current session (required — 401 if not signed in)."""
    if session is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


async def require_admin(
    session: ClientSession = Depends(get_current_session),
) -> ClientSession:
    """Administrators, or profiles tagged admin (403 otherwise)."""
    if session.user.kind is not Role.ADMIN and session.user.role is not Role.ADMIN:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return session
