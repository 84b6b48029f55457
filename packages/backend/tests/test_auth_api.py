"""Auth API tests — login, signup, admin setup, Google, session lifecycle.

Learn: Tests cover:
1. Login for both stores + the single generic failure response
2. Signup + duplicate prevention across stores
3. Secret-gated administrator setup
4. Google callback (provider faked with httpx.MockTransport)
5. Reading the session, with and without a data-store token
6. Explicit-only session refresh
"""

import httpx
import pytest
from structlog.testing import capture_logs

from flortune.auth.dependencies import get_oauth_client
from flortune.auth.oauth import GoogleOAuthClient
from flortune.main import app

from conftest import DEFAULT_PASSWORD
from test_oauth import google_transport


async def login(client, email, password=DEFAULT_PASSWORD):
    return await client.post(
        "/api/v1/auth/login", json={"email": email, "password": password}
    )


def auth(token):
    return {"Authorization": f"Bearer {token}"}


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_profile(client, make_profile):
    await make_profile(email="ana@example.com")
    r = await login(client, "ana@example.com")
    assert r.status_code == 200
    data = r.json()
    assert data["token_type"] == "bearer"
    assert data["session_token"]
    assert "flortune.session-token" in r.headers.get("set-cookie", "")


@pytest.mark.asyncio
async def test_login_admin(client, make_admin):
    await make_admin(email="root@example.com")
    r = await login(client, "root@example.com")
    assert r.status_code == 200

    s = await client.get("/api/v1/auth/session", headers=auth(r.json()["session_token"]))
    assert s.status_code == 200
    session = s.json()
    assert session["user"]["kind"] == "admin"
    assert session["user"]["role"] == "admin"
    assert session["downstream_access_token"] is None


@pytest.mark.asyncio
async def test_login_failures_look_identical(client, make_profile):
    """Unknown email, OAuth-only account and wrong password share one response."""
    await make_profile(email="ana@example.com")
    await make_profile(email="google@example.com", password=None)

    responses = [
        await login(client, "ghost@example.com", "whatever"),
        await login(client, "google@example.com", "whatever"),
        await login(client, "ana@example.com", "wrong-password"),
    ]
    assert {r.status_code for r in responses} == {401}
    assert {r.json()["detail"] for r in responses} == {"Invalid credentials"}


@pytest.mark.asyncio
async def test_login_failure_reason_only_in_logs(client, make_profile):
    await make_profile(email="google@example.com", password=None)
    with capture_logs() as logs:
        r = await login(client, "google@example.com", "hunter2-guess")
    assert r.status_code == 401

    failures = [e for e in logs if e["event"] == "auth.login_failed"]
    assert failures[0]["reason"] == "no_password_set"
    assert "hunter2-guess" not in repr(logs)


# ═══════════════════════════════════════════════════════════
# Signup
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_signup_then_login(client):
    r = await client.post(
        "/api/v1/auth/signup",
        json={
            "name": "Ana Souza",
            "email": "Ana@Example.com",
            "password": "secure_password_123",
            "confirm_password": "secure_password_123",
        },
    )
    assert r.status_code == 201
    profile = r.json()
    assert profile["email"] == "ana@example.com"
    assert profile["display_name"] == "Ana"
    assert profile["full_name"] == "Ana Souza"
    assert profile["plan_id"] == "tier-cultivador"
    assert profile["role"] == "user"
    assert "password_hash" not in profile

    r = await login(client, "ana@example.com", "secure_password_123")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_signup_validation(client):
    body = {
        "name": "Ana",
        "email": "ana@example.com",
        "password": "abc",
        "confirm_password": "abc",
    }
    assert (await client.post("/api/v1/auth/signup", json=body)).status_code == 422

    body.update(password="long-enough-1", confirm_password="long-enough-2")
    assert (await client.post("/api/v1/auth/signup", json=body)).status_code == 422


@pytest.mark.asyncio
async def test_signup_blank_name_rejected(client):
    r = await client.post(
        "/api/v1/auth/signup",
        json={
            "name": "   ",
            "email": "ana@example.com",
            "password": "secure_password_123",
            "confirm_password": "secure_password_123",
        },
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_signup_long_first_name_fits_display_name(client):
    """The first word becomes the display name, cut to its 100-char column."""
    long_word = "A" * 150
    r = await client.post(
        "/api/v1/auth/signup",
        json={
            "name": f"{long_word} Souza",
            "email": "ana@example.com",
            "password": "secure_password_123",
            "confirm_password": "secure_password_123",
        },
    )
    assert r.status_code == 201
    profile = r.json()
    assert profile["display_name"] == "A" * 100
    assert profile["full_name"] == f"{long_word} Souza"


@pytest.mark.asyncio
async def test_signup_refuses_admin_email(client, make_admin):
    await make_admin(email="root@example.com")
    r = await client.post(
        "/api/v1/auth/signup",
        json={
            "name": "Root",
            "email": "root@example.com",
            "password": "password_123",
            "confirm_password": "password_123",
        },
    )
    assert r.status_code == 409


# ═══════════════════════════════════════════════════════════
# Administrator setup
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_admin_setup(client):
    body = {
        "email": "root@example.com",
        "password": "admin_password_1",
        "display_name": "Root",
        "secret_code": "let-me-in",
    }
    r = await client.post("/api/v1/auth/admin/setup", json=body)
    assert r.status_code == 201
    assert r.json()["email"] == "root@example.com"

    r = await login(client, "root@example.com", "admin_password_1")
    assert r.status_code == 200

    r = await client.post("/api/v1/auth/admin/setup", json=body)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_admin_setup_wrong_secret(client):
    r = await client.post(
        "/api/v1/auth/admin/setup",
        json={
            "email": "root@example.com",
            "password": "admin_password_1",
            "secret_code": "guess",
        },
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_admin_setup_disabled(client, monkeypatch):
    from flortune.config import settings

    monkeypatch.setattr(settings, "admin_setup_secret", "")
    r = await client.post(
        "/api/v1/auth/admin/setup",
        json={
            "email": "root@example.com",
            "password": "admin_password_1",
            "secret_code": "let-me-in",
        },
    )
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Google sign-in
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def google(client):
    """Enable Google sign-in backed by fake provider endpoints."""

    def _enable(**kwargs):
        app.dependency_overrides[get_oauth_client] = lambda: GoogleOAuthClient(
            "cid", "csecret", transport=google_transport(**kwargs)
        )

    return _enable


@pytest.mark.asyncio
async def test_google_disabled_without_credentials(client):
    r = await client.get("/api/v1/auth/oauth/google/authorize")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_google_authorize(client, google):
    google()
    r = await client.get("/api/v1/auth/oauth/google/authorize")
    assert r.status_code == 200
    data = r.json()
    assert data["url"].startswith("https://accounts.google.com/")
    assert f"state={data['state']}" in data["url"]
    assert "flortune.oauth-state" in r.headers["set-cookie"]


@pytest.mark.asyncio
async def test_google_callback_provisions_and_signs_in(client, google):
    google()
    r = await client.get(
        "/api/v1/auth/oauth/google/callback",
        params={"code": "auth-code", "state": "abc"},
        headers={"Cookie": "flortune.oauth-state=abc"},
    )
    assert r.status_code == 200

    s = await client.get("/api/v1/auth/session", headers=auth(r.json()["session_token"]))
    session = s.json()
    assert session["user"]["email"] == "ana@example.com"
    assert session["user"]["provider"] == "google"
    assert session["user"]["kind"] == "user"
    assert session["user"]["profile"]["plan_id"] == "tier-cultivador"
    assert session["downstream_access_token"]


@pytest.mark.asyncio
async def test_google_callback_state_mismatch(client, google):
    google()
    r = await client.get(
        "/api/v1/auth/oauth/google/callback",
        params={"code": "auth-code", "state": "abc"},
        headers={"Cookie": "flortune.oauth-state=xyz"},
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_google_callback_unverified_email(client, google):
    google(userinfo={"sub": "g-9", "email": "ana@example.com", "email_verified": False})
    r = await client.get(
        "/api/v1/auth/oauth/google/callback",
        params={"code": "auth-code", "state": "abc"},
        headers={"Cookie": "flortune.oauth-state=abc"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_google_callback_admin_email(client, google, make_admin):
    await make_admin(email="ana@example.com")
    google()
    r = await client.get(
        "/api/v1/auth/oauth/google/callback",
        params={"code": "auth-code", "state": "abc"},
        headers={"Cookie": "flortune.oauth-state=abc"},
    )
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_session_requires_token(client):
    r = await client.get("/api/v1/auth/session")
    assert r.status_code == 401

    r = await client.get("/api/v1/auth/session", headers=auth("garbage"))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_session_from_cookie(client, make_profile, issuer):
    from flortune.auth.identity import Identity

    profile = await make_profile()
    token = issuer.issue(Identity.from_profile(profile))
    r = await client.get(
        "/api/v1/auth/session",
        headers={"Cookie": f"flortune.session-token={token}"},
    )
    assert r.status_code == 200
    assert r.json()["user"]["id"] == str(profile.id)


@pytest.mark.asyncio
async def test_refresh_without_update_changes_nothing(client, make_profile, store):
    await make_profile(email="ana@example.com", display_name="Ana")
    token = (await login(client, "ana@example.com")).json()["session_token"]

    r = await client.post(
        "/api/v1/auth/session/refresh",
        json={"update": False, "profile": {"display_name": "Ignored"}},
        headers=auth(token),
    )
    assert r.status_code == 200
    assert r.json()["session_token"] == token
    assert (await store.get_profile_by_email("ana@example.com")).display_name == "Ana"


@pytest.mark.asyncio
async def test_refresh_with_update_replaces_snapshot(client, make_profile, issuer):
    await make_profile(email="ana@example.com", display_name="Ana")
    token = (await login(client, "ana@example.com")).json()["session_token"]

    r = await client.post(
        "/api/v1/auth/session/refresh",
        json={"update": True, "profile": {"display_name": "Aninha", "has_seen_welcome": True}},
        headers=auth(token),
    )
    assert r.status_code == 200
    new_token = r.json()["session_token"]
    assert new_token != token
    assert issuer.verify(new_token)["exp"] == issuer.verify(token)["exp"]

    session = (await client.get("/api/v1/auth/session", headers=auth(new_token))).json()
    assert session["user"]["name"] == "Aninha"
    assert session["user"]["profile"]["has_seen_welcome"] is True


@pytest.mark.asyncio
async def test_admin_refresh_rejects_profile_edits(client, make_admin, bearer):
    admin = await make_admin()
    r = await client.post(
        "/api/v1/auth/session/refresh",
        json={"update": True, "profile": {"display_name": "New"}},
        headers=bearer(admin),
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_logout(client):
    r = await client.post("/api/v1/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"signed_out": True}
    assert "flortune.session-token" in r.headers["set-cookie"]
