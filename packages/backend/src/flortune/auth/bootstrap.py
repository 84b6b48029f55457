"""Administrator bootstrap.

Learn: Administrators can't sign up. The only way to create one is to
present the static setup secret configured on the server (the same
secret whoever deployed the service holds). Each accepted call creates
exactly one Administrator. The secret is compared in constant time.
"""

import secrets

import structlog

from flortune.auth.errors import BootstrapError
from flortune.auth.password import hash_password
from flortune.auth.store import IdentityStore
from flortune.db.models import Administrator

logger = structlog.get_logger()


class BootstrapDisabled(BootstrapError):
    """No setup secret is configured on this server."""


class BootstrapForbidden(BootstrapError):
    """The presented secret code is wrong."""


class AdminBootstrap:
    def __init__(self, store: IdentityStore, setup_secret: str):
        self.store = store
        self.setup_secret = setup_secret

    async def create_admin(
        self, *, email: str, password: str, display_name: str, secret_code: str
    ) -> Administrator:
        """Create one Administrator if `secret_code` matches.

        Raises BootstrapDisabled, BootstrapForbidden, or IdentityConflict
        (email already used by either store).
        """
        if not self.setup_secret:
            raise BootstrapDisabled("Administrator setup is disabled")
        if not secrets.compare_digest(
            secret_code.encode("utf-8"), self.setup_secret.encode("utf-8")
        ):
            logger.warning("bootstrap.bad_secret")
            raise BootstrapForbidden("Invalid setup secret")

        admin = await self.store.create_admin(
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
        )
        logger.info("bootstrap.admin_created", subject_id=str(admin.id))
        return admin
