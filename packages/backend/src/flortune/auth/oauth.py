"""Google sign-in: provider code exchange and profile linking.

Learn: Two pieces with different jobs:
1. GoogleOAuthClient talks to Google — builds the consent URL and turns
   the callback's authorization code into a verified ProviderProfile.
2. OAuthIdentityLinker turns a ProviderProfile into an Identity, creating
   a Profile the first time an email shows up.

Linking never overwrites an existing profile with provider data; the
user's own edits win. Provisioning is idempotent (see
IdentityStore.provision_profile), so two simultaneous first logins end
up on the same row.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlencode

import httpx
import structlog

from flortune.auth.errors import IdentityConflict
from flortune.auth.identity import Identity, normalize_email
from flortune.auth.store import IdentityStore
from flortune.db.models import Profile

logger = structlog.get_logger()

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class OAuthError(Exception):
    """The provider rejected the exchange or returned unusable data."""


@dataclass(frozen=True)
class ProviderProfile:
    """What the provider asserts about the signed-in person."""

    subject: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None
    email_verified: bool = True


def placeholder_avatar(display_name: str, template: str) -> str:
    """Avatar URL keyed by the display name's first letter ("U" if empty)."""
    initial = (display_name.strip()[:1] or "U").upper()
    return template.format(initial=quote(initial))


class GoogleOAuthClient:
    """Authorization-code flow against Google's OpenID Connect endpoints."""

    provider = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> ProviderProfile:
        """Swap an authorization code for the user's profile claims."""
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as http:
            try:
                token_resp = await http.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
                if token_resp.status_code != 200:
                    raise OAuthError(
                        f"Token exchange failed ({token_resp.status_code})"
                    )
                access_token = token_resp.json().get("access_token")
                if not access_token:
                    raise OAuthError("Token response had no access_token")

                info_resp = await http.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                if info_resp.status_code != 200:
                    raise OAuthError(
                        f"Userinfo request failed ({info_resp.status_code})"
                    )
                info = info_resp.json()
            except httpx.HTTPError as e:
                raise OAuthError(f"Provider unreachable: {e}") from e

        email = info.get("email")
        if not email or not info.get("sub"):
            raise OAuthError("Provider did not return an email and subject")

        return ProviderProfile(
            subject=str(info["sub"]),
            email=normalize_email(email),
            display_name=info.get("name") or email.split("@")[0],
            avatar_url=info.get("picture"),
            email_verified=bool(info.get("email_verified", False)),
        )


class OAuthIdentityLinker:
    """Resolves a provider login to a Profile, provisioning on first sight."""

    def __init__(
        self,
        store: IdentityStore,
        *,
        default_plan_id: str,
        avatar_placeholder_url: str,
        provider: str = "google",
    ):
        self.store = store
        self.default_plan_id = default_plan_id
        self.avatar_placeholder_url = avatar_placeholder_url
        self.provider = provider

    async def resolve_or_provision(
        self,
        email: str,
        display_name: str,
        avatar_url: Optional[str] = None,
        provider_subject: Optional[str] = None,
    ) -> Identity:
        """Return the Identity for this email, creating its Profile if needed.

        Raises IdentityConflict when the email belongs to an administrator
        (administrators only sign in with a password) and ProvisioningError
        when the profile can't be stored.
        `provider_subject` is the provider's own id for the user; it is only
        logged, since profiles are keyed by email.
        """
        email = normalize_email(email)

        if await self.store.get_admin_by_email(email) is not None:
            raise IdentityConflict(email)

        profile = await self.store.get_profile_by_email(email)
        if profile is not None:
            return Identity.from_profile(profile, provider=self.provider)

        display_name = display_name.strip() or email.split("@")[0]
        if avatar_url and len(avatar_url) > Profile.__table__.c.avatar_url.type.length:
            avatar_url = None
        profile = await self.store.provision_profile(
            email=email,
            display_name=display_name,
            avatar_url=avatar_url
            or placeholder_avatar(display_name, self.avatar_placeholder_url),
            plan_id=self.default_plan_id,
        )
        logger.info(
            "oauth.profile_provisioned",
            subject_id=str(profile.id),
            provider=self.provider,
            provider_subject=provider_subject,
        )
        return Identity.from_profile(profile, provider=self.provider)
