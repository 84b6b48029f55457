"""Short-lived tokens for the row-level-secured data store.

Learn: The data store trusts any JWT signed with its own secret and
restricts every query to rows whose owner matches the token's `sub`.
We mint such a token on every session read (they are never cached)
with the claims the store expects: aud/role "authenticated", sub, email.

The downstream secret is deliberately not the session secret; leaking
one must not let anyone forge the other.

Administrators never get one. Failing to mint is not fatal to the
session either — see SessionMaterializer.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from flortune.auth.errors import DownstreamMintFailure
from flortune.auth.identity import Role

DOWNSTREAM_AUDIENCE = "authenticated"
DOWNSTREAM_ROLE = "authenticated"


class DownstreamTokenMinter:
    """Stateless minter for data-store access tokens."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=1),
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    def mint(
        self,
        subject_id: str,
        email: str,
        role: Role,
        *,
        provider: str = "email",
    ) -> Optional[str]:
        """Sign a data-store token, or return None for administrators.

        `role` is the authority the identity was resolved from.
        Raises DownstreamMintFailure when the token can't be signed.
        """
        if Role(role) is Role.ADMIN:
            return None
        if not self.secret:
            raise DownstreamMintFailure("Downstream signing secret is not configured")

        now = datetime.now(timezone.utc)
        payload = {
            "aud": DOWNSTREAM_AUDIENCE,
            "sub": subject_id,
            "email": email,
            "role": DOWNSTREAM_ROLE,
            "iat": now,
            "exp": now + self.ttl,
            "app_metadata": {"provider": provider},
            "user_metadata": {},
        }
        try:
            return jwt.encode(payload, self.secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise DownstreamMintFailure(str(e)) from e

    def decode(self, token: str) -> dict:
        """Validate a token the way the data store does.

        Raises jwt.InvalidTokenError subclasses on failure.
        """
        return jwt.decode(
            token,
            self.secret,
            algorithms=[self.algorithm],
            audience=DOWNSTREAM_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
