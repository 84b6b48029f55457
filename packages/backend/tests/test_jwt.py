"""Session token tests — issue, verify, refresh."""

from datetime import timedelta

import jwt
import pytest

from flortune.auth.errors import SigningConfigMissing
from flortune.auth.identity import Identity, Role
from flortune.auth.jwt import (
    SessionTokenIssuer,
    TokenError,
    TokenExpired,
    TokenInvalidSignature,
)


def sample_identity(**overrides) -> Identity:
    fields = dict(
        kind=Role.USER,
        subject_id="5b0e1c1e-9f5e-4a43-9d7c-1f0c7b2f9d11",
        email="ana@example.com",
        display_name="Ana",
        avatar_url=None,
        role=Role.USER,
        profile={"plan_id": "tier-cultivador", "has_seen_welcome": False},
    )
    fields.update(overrides)
    return Identity(**fields)


def test_empty_secret_is_refused():
    with pytest.raises(SigningConfigMissing):
        SessionTokenIssuer("")


def test_issue_embeds_snapshot(issuer):
    identity = sample_identity()
    claims = issuer.verify(issuer.issue(identity))

    assert claims["sub"] == identity.subject_id
    assert claims["identity"] == identity.snapshot()
    assert Identity.from_snapshot(claims["identity"]) == identity
    assert claims["exp"] - claims["iat"] == int(timedelta(days=30).total_seconds())


def test_provider_defaults_stored_beside_snapshot(issuer):
    token = issuer.issue(
        sample_identity(provider="google"),
        defaults={"name": "Ana Souza", "email": "ana@example.com", "picture": "https://p/a.png"},
    )
    claims = issuer.verify(token)
    assert claims["name"] == "Ana Souza"
    assert claims["picture"] == "https://p/a.png"
    assert claims["identity"]["display_name"] == "Ana"
    assert claims["provider"] == "google"


def test_expired_token(issuer):
    expired = SessionTokenIssuer(issuer.secret, max_age=timedelta(seconds=-10))
    with pytest.raises(TokenExpired):
        issuer.verify(expired.issue(sample_identity()))


def test_foreign_signature(issuer):
    forged = SessionTokenIssuer("someone-elses-secret").issue(sample_identity())
    with pytest.raises(TokenInvalidSignature):
        issuer.verify(forged)


def test_non_session_token(issuer):
    other = jwt.encode({"sub": "x", "iat": 1, "exp": 4102444800}, issuer.secret, algorithm="HS256")
    with pytest.raises(TokenError):
        issuer.verify(other)


def test_refresh_without_update_returns_token_unchanged(issuer):
    token = issuer.issue(sample_identity())
    changed = sample_identity(display_name="Someone Else")
    assert issuer.refresh(token, changed, update=False) == token


def test_refresh_replaces_snapshot_and_keeps_expiry(issuer):
    token = issuer.issue(sample_identity())
    before = issuer.verify(token)

    updated = sample_identity(
        display_name="Aninha", profile={"plan_id": "tier-cultivador"}
    )
    after = issuer.verify(issuer.refresh(token, updated, update=True))

    assert after["identity"]["display_name"] == "Aninha"
    # Wholesale replacement: keys missing from the new snapshot are gone.
    assert "has_seen_welcome" not in after["identity"]["profile"]
    assert after["exp"] == before["exp"]
    assert after["sub"] == before["sub"]


def test_refresh_refuses_other_subject(issuer):
    token = issuer.issue(sample_identity())
    intruder = sample_identity(subject_id="00000000-0000-0000-0000-000000000099")
    with pytest.raises(TokenError):
        issuer.refresh(token, intruder, update=True)
