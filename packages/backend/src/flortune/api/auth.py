"""Auth API — sign-in, sign-up, Google OAuth, session lifecycle.

Learn: Routes for the identity lifecycle:
- POST /auth/login → email/password → session token (+ cookie)
- POST /auth/signup → create a password profile
- POST /auth/admin/setup → secret-gated administrator bootstrap
- GET  /auth/oauth/google/authorize → provider consent URL
- GET  /auth/oauth/google/callback → code → profile → session token
- GET  /auth/session → current ClientSession (with data-store token)
- POST /auth/session/refresh → replace the identity snapshot on request
- POST /auth/logout → drop the session cookie

Every credential failure returns the same 401 "Invalid credentials";
the real reason only goes to the logs.
"""

import secrets
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response

from flortune.auth.authenticator import CredentialAuthenticator
from flortune.auth.bootstrap import AdminBootstrap, BootstrapDisabled, BootstrapForbidden
from flortune.auth.dependencies import (
    get_current_session,
    get_identity_store,
    get_oauth_client,
    get_oauth_linker,
    get_session_token,
    get_token_issuer,
)
from flortune.auth.errors import AuthenticationError, IdentityConflict, ProvisioningError
from flortune.auth.identity import Identity
from flortune.auth.jwt import SessionTokenIssuer, TokenError
from flortune.auth.oauth import GoogleOAuthClient, OAuthError, OAuthIdentityLinker
from flortune.auth.password import hash_password
from flortune.auth.store import IdentityStore
from flortune.config import settings
from flortune.schemas.auth import (
    AdminRead,
    AdminSetupRequest,
    ClientSession,
    LoginRequest,
    OAuthAuthorizeResponse,
    ProfileRead,
    SessionRefreshRequest,
    SignupRequest,
    TokenResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")

OAUTH_STATE_COOKIE = "flortune.oauth-state"
INVALID_CREDENTIALS = "Invalid credentials"


def _session_response(
    response: Response, issuer: SessionTokenIssuer, token: str
) -> TokenResponse:
    """Set the session cookie and build the token response."""
    expires_at = datetime.fromtimestamp(issuer.verify(token)["exp"], tz=timezone.utc)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        expires=expires_at,
        path="/",
    )
    return TokenResponse(session_token=token, expires_at=expires_at)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    store: IdentityStore = Depends(get_identity_store),
    issuer: SessionTokenIssuer = Depends(get_token_issuer),
):
    """Login with email and password → session token."""
    try:
        identity = await CredentialAuthenticator(store).authenticate(
            body.email, body.password
        )
    except AuthenticationError as e:
        logger.info("auth.login_failed", reason=e.reason.value)
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    return _session_response(response, issuer, issuer.issue(identity))


# ─── Signup ──────────────────────────────────────────────


@router.post("/signup", response_model=ProfileRead, status_code=201)
async def signup(
    body: SignupRequest,
    store: IdentityStore = Depends(get_identity_store),
):
    """Create a password profile. The first word of the name becomes the display name."""
    full_name = body.name.strip()
    try:
        profile = await store.create_profile(
            email=body.email,
            display_name=full_name.split()[0],
            full_name=full_name,
            password_hash=hash_password(body.password),
            plan_id=settings.default_plan_id,
        )
    except IdentityConflict:
        raise HTTPException(status_code=409, detail="Email already registered")

    logger.info("auth.signup", subject_id=str(profile.id))
    return profile


# ─── Administrator bootstrap ────────────────────────────


@router.post("/admin/setup", response_model=AdminRead, status_code=201)
async def setup_admin(
    body: AdminSetupRequest,
    store: IdentityStore = Depends(get_identity_store),
):
    """Create an administrator, gated by the server's setup secret."""
    bootstrap = AdminBootstrap(store, settings.admin_setup_secret)
    try:
        return await bootstrap.create_admin(
            email=body.email,
            password=body.password,
            display_name=body.display_name,
            secret_code=body.secret_code,
        )
    except BootstrapDisabled:
        raise HTTPException(status_code=404, detail="Not found")
    except BootstrapForbidden:
        raise HTTPException(status_code=403, detail="Invalid setup secret")
    except IdentityConflict:
        raise HTTPException(status_code=409, detail="Email already registered")


# ─── Google OAuth ───────────────────────────────────────


def _require_oauth(client: Optional[GoogleOAuthClient]) -> GoogleOAuthClient:
    if client is None:
        raise HTTPException(status_code=404, detail="Google sign-in is disabled")
    return client


@router.get("/oauth/google/authorize", response_model=OAuthAuthorizeResponse)
async def google_authorize(
    request: Request,
    response: Response,
    client: Optional[GoogleOAuthClient] = Depends(get_oauth_client),
):
    """Start Google sign-in. The state value is echoed back in a cookie."""
    client = _require_oauth(client)
    state = secrets.token_urlsafe(24)
    redirect_uri = str(request.url_for("google_callback"))
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=600,
    )
    return OAuthAuthorizeResponse(
        url=client.authorization_url(redirect_uri, state), state=state
    )


@router.get("/oauth/google/callback", response_model=TokenResponse, name="google_callback")
async def google_callback(
    request: Request,
    response: Response,
    code: str,
    state: str,
    state_cookie: Optional[str] = Cookie(None, alias=OAUTH_STATE_COOKIE),
    client: Optional[GoogleOAuthClient] = Depends(get_oauth_client),
    linker: OAuthIdentityLinker = Depends(get_oauth_linker),
    issuer: SessionTokenIssuer = Depends(get_token_issuer),
):
    """Finish Google sign-in → same session issuance as a password login."""
    client = _require_oauth(client)
    if not state_cookie or not secrets.compare_digest(state, state_cookie):
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    redirect_uri = str(request.url_for("google_callback"))
    try:
        provider_profile = await client.exchange_code(code, redirect_uri)
    except OAuthError as e:
        logger.warning("oauth.exchange_failed", provider=client.provider, error=str(e))
        raise HTTPException(status_code=401, detail="Sign-in failed")

    if not provider_profile.email_verified:
        logger.info("oauth.unverified_email", provider=client.provider)
        raise HTTPException(status_code=401, detail="Sign-in failed")

    try:
        identity = await linker.resolve_or_provision(
            provider_profile.email,
            provider_profile.display_name,
            provider_profile.avatar_url,
            provider_subject=provider_profile.subject,
        )
    except IdentityConflict:
        logger.info("oauth.administrator_email", provider=client.provider)
        raise HTTPException(status_code=401, detail="Sign-in failed")
    except ProvisioningError as e:
        logger.error("oauth.provisioning_failed", provider=client.provider, error=str(e))
        raise HTTPException(status_code=503, detail="Could not complete sign-in")

    token = issuer.issue(
        identity,
        defaults={
            "name": provider_profile.display_name,
            "email": provider_profile.email,
            "picture": provider_profile.avatar_url,
        },
    )
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return _session_response(response, issuer, token)


# ─── Session ────────────────────────────────────────────


@router.get("/session", response_model=ClientSession)
async def get_session(session: ClientSession = Depends(get_current_session)):
    """Current session, including a freshly minted data-store token."""
    return session


@router.post("/session/refresh", response_model=TokenResponse)
async def refresh_session(
    body: SessionRefreshRequest,
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    store: IdentityStore = Depends(get_identity_store),
    issuer: SessionTokenIssuer = Depends(get_token_issuer),
):
    """Replace the session's identity snapshot — only when `update` is set.

    Learn: With update=true any profile edits are written first, then the
    identity is re-read from its store and replaces the embedded snapshot
    wholesale. With update=false the token comes back unchanged and the
    supplied edits are ignored.
    """
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        claims = issuer.verify(token)
        current = Identity.from_snapshot(claims["identity"])
    except (TokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Authentication required")

    if not body.update:
        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        return TokenResponse(session_token=token, expires_at=expires_at)

    changes = body.profile.model_dump(exclude_unset=True, exclude_none=True) if body.profile else {}

    if current.is_administrator:
        if changes:
            raise HTTPException(status_code=400, detail="Administrators have no editable profile")
        admin = await store.get_admin(claims["sub"])
        if admin is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        identity = Identity.from_administrator(admin, provider=current.provider)
    else:
        profile = await store.get_profile(claims["sub"])
        if profile is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        if changes:
            profile = await store.update_profile(profile, **changes)
        identity = Identity.from_profile(profile, provider=current.provider)

    new_token = issuer.refresh(token, identity, update=True)
    logger.info("session.refreshed", subject_id=identity.subject_id)
    return _session_response(response, issuer, new_token)


@router.post("/logout")
async def logout(response: Response):
    """Drop the session cookie. Tokens are stateless; clients discard theirs."""
    response.delete_cookie(settings.session_cookie_name, path="/")
    return {"signed_out": True}
