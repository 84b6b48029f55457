"""Session materialization — signed token in, ClientSession out.

Learn: This is a pure function of the token. Nothing is read from the
database and nothing is cached between requests: the identity comes
from the snapshot embedded at login (or at the last explicit refresh),
and a fresh data-store token is minted every time.

Two policies live here:
- A bad signature or an expired token means "not signed in" (None),
  never an exception.
- Failing to mint the data-store token degrades the session to "no
  downstream access" instead of locking the user out of the app.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from flortune.auth.downstream import DownstreamTokenMinter
from flortune.auth.errors import DownstreamMintFailure
from flortune.auth.identity import Identity
from flortune.auth.jwt import SessionTokenIssuer, TokenError
from flortune.schemas.auth import ClientSession, SessionUser

logger = structlog.get_logger()


class SessionMaterializer:
    def __init__(self, issuer: SessionTokenIssuer, minter: DownstreamTokenMinter):
        self.issuer = issuer
        self.minter = minter

    def materialize(self, token: Optional[str]) -> Optional[ClientSession]:
        """Project a session token into a ClientSession, or None if unauthenticated."""
        if not token:
            return None

        try:
            claims = self.issuer.verify(token)
            identity = Identity.from_snapshot(claims["identity"])
        except TokenError as e:
            logger.info("session.rejected", reason=type(e).__name__)
            return None
        except (KeyError, TypeError, ValueError):
            logger.warning("session.malformed_snapshot")
            return None

        # Embedded snapshot values win over provider defaults.
        user = SessionUser(
            id=claims["sub"],
            email=identity.email or claims.get("email") or "",
            name=identity.display_name or claims.get("name") or "",
            image=identity.avatar_url or claims.get("picture"),
            role=identity.role,
            kind=identity.kind,
            provider=identity.provider,
            profile=identity.profile,
        )

        try:
            downstream = self.minter.mint(
                user.id, user.email, identity.kind, provider=identity.provider
            )
        except DownstreamMintFailure as e:
            logger.warning(
                "session.downstream_mint_failed", subject_id=user.id, error=str(e)
            )
            downstream = None

        return ClientSession(
            user=user,
            expires=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            downstream_access_token=downstream,
        )
