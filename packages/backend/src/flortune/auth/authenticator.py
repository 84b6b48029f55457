"""Email/password authentication across both identity stores.

Learn: The admins table is checked first. Once an email matches an
administrator, the decision is final: a wrong password fails right
there and the profiles table is never consulted. Otherwise an
administrator's email could be probed against the user store.

Failure reasons are distinct (not found / no password / wrong password)
for logs only. Callers must collapse them into one response.
"""

import structlog

from flortune.auth.errors import AuthFailure, AuthenticationError
from flortune.auth.identity import Identity, normalize_email
from flortune.auth.password import verify_password
from flortune.auth.store import IdentityStore

logger = structlog.get_logger()


class CredentialAuthenticator:
    """Resolves an email/password pair to an Identity."""

    def __init__(self, store: IdentityStore):
        self.store = store

    async def authenticate(self, email: str, password: str) -> Identity:
        """Return the resolved Identity or raise AuthenticationError."""
        email = normalize_email(email)

        admin = await self.store.get_admin_by_email(email)
        if admin is not None:
            if not verify_password(password, admin.password_hash):
                raise AuthenticationError(AuthFailure.INVALID_CREDENTIALS)
            logger.info("auth.admin_authenticated", subject_id=str(admin.id))
            return Identity.from_administrator(admin)

        profile = await self.store.get_profile_by_email(email)
        if profile is None or profile.password_hash is None:
            # Same bcrypt cost as a real check.
            verify_password(password, None)
            reason = AuthFailure.NOT_FOUND if profile is None else AuthFailure.NO_PASSWORD_SET
            raise AuthenticationError(reason)

        if not verify_password(password, profile.password_hash):
            raise AuthenticationError(AuthFailure.INVALID_CREDENTIALS)

        logger.info("auth.profile_authenticated", subject_id=str(profile.id))
        return Identity.from_profile(profile)
