"""Failure taxonomy for identity resolution and session bridging.

Learn: Internal reasons are kept distinct so they can be logged, but the
HTTP layer collapses every credential failure into one generic 401 so a
caller can't tell "no such account" from "wrong password".
"""

import enum


class AuthFailure(str, enum.Enum):
    """Why a credential login was refused."""

    NOT_FOUND = "not_found"
    NO_PASSWORD_SET = "no_password_set"
    INVALID_CREDENTIALS = "invalid_credentials"


class AuthenticationError(Exception):
    """Raised when credential authentication fails."""

    def __init__(self, reason: AuthFailure):
        super().__init__(reason.value)
        self.reason = reason


class ProvisioningError(Exception):
    """A Profile could not be created or re-read after an OAuth login."""


class IdentityConflict(Exception):
    """The email is already registered in one of the identity stores."""


class BootstrapError(Exception):
    """Administrator bootstrap was refused."""


class SigningConfigMissing(ValueError):
    """A signing secret is missing or unusable. Fatal at startup."""


class DownstreamMintFailure(Exception):
    """The data-store token could not be minted. Never fatal."""
