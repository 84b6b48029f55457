"""Session token creation, refresh and verification.

Learn: The session token is a JWT signed with the session secret. It
carries the subject id plus a full snapshot of the resolved Identity,
so reading a session never needs a database round-trip.

- Lifetime is absolute (30 days by default) and is never extended.
- A refresh replaces the embedded snapshot wholesale, and only when the
  caller explicitly asks for it. There is no merge, so stale fields
  can't linger.
- Logout is the client dropping the token; nothing is stored server-side.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from flortune.auth.errors import SigningConfigMissing
from flortune.auth.identity import Identity

SESSION_TOKEN_TYPE = "session"


class TokenError(Exception):
    """Raised when token creation/verification fails."""


class TokenExpired(TokenError):
    """The token's exp is in the past."""


class TokenInvalidSignature(TokenError):
    """The token was not signed with our secret."""


class SessionTokenIssuer:
    """Issues and verifies signed session tokens."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        max_age: timedelta = timedelta(days=30),
    ):
        if not secret:
            raise SigningConfigMissing("Session signing secret is empty")
        self.secret = secret
        self.algorithm = algorithm
        self.max_age = max_age

    def issue(
        self, identity: Identity, defaults: Optional[dict[str, Any]] = None
    ) -> str:
        """Create a session token for a freshly resolved identity.

        `defaults` holds what an external provider said about the user
        (name, email, picture). They are stored alongside the snapshot,
        which takes precedence when the session is materialized.
        """
        defaults = defaults or {}
        now = datetime.now(timezone.utc)
        payload = {
            "sub": identity.subject_id,
            "typ": SESSION_TOKEN_TYPE,
            "identity": identity.snapshot(),
            "name": defaults.get("name", identity.display_name),
            "email": defaults.get("email", identity.email),
            "picture": defaults.get("picture", identity.avatar_url),
            "provider": identity.provider,
            "iat": now,
            "exp": now + self.max_age,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def refresh(self, token: str, identity: Identity, *, update: bool) -> str:
        """Replace the embedded snapshot, keeping subject and expiry.

        Without update intent the existing token is returned untouched,
        whatever identity was passed in.
        """
        claims = self.verify(token)
        if not update:
            return token

        if identity.subject_id != claims["sub"]:
            raise TokenError("Snapshot belongs to a different subject")

        payload = {
            "sub": claims["sub"],
            "typ": SESSION_TOKEN_TYPE,
            "identity": identity.snapshot(),
            "name": claims.get("name"),
            "email": claims.get("email"),
            "picture": claims.get("picture"),
            "provider": claims.get("provider", identity.provider),
            "iat": datetime.now(timezone.utc),
            "exp": claims["exp"],
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        """Verify and decode a session token.

        Returns the payload dict on success.
        Raises TokenError (or a subclass) on failure.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired("Token has expired")
        except jwt.InvalidSignatureError:
            raise TokenInvalidSignature("Token signature is invalid")
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}")

        if payload.get("typ") != SESSION_TOKEN_TYPE or "identity" not in payload:
            raise TokenError("Not a session token")
        return payload
