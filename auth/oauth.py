"""
auth/oauth.py -- Authlib Google OAuth2 configuration and the federated authenticator.

Reads configuration from core.config.get_settings() at module load. Google is
registered only when both client ID and secret are configured; otherwise
create_client("google") returns None and the login routes report
oauth_failed instead of redirecting.

Flow (authorization code):
  1. GET /auth/google          -- authorize_redirect() sends the browser to
                                  Google with scope "profile email".
  2. GET /auth/google/secrets  -- the callback carries ?code=&state=.
                                  exchange_and_fetch_profile() trades the code
                                  for an access token and fetches the userinfo
                                  document.

  The OAuth state parameter (CSRF protection) is stored by authlib in the
  Starlette session between steps 1 and 2 and verified on the callback.

This module only ever produces an email (wrapped in a Profile). It never reads
or writes the password marker -- that is the reconciler's job.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError

from auth.errors import FederationError, FederationFailure
from auth.models import Profile
from core.config import get_settings

logger = logging.getLogger("quillblog.auth.oauth")

GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

if _cfg.google_enabled:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        access_token_url="https://oauth2.googleapis.com/token",  # noqa: S106 -- URL, not a password
        client_kwargs={"scope": "profile email"},
    )
    logger.info("Google OAuth provider registered")


# ---------------------------------------------------------------------------
# Federated authenticator
# ---------------------------------------------------------------------------


class FederatedAuthenticator:
    """Drive the authorization-code flow against one registered provider.

    Args:
        registry: authlib OAuth registry (anything with create_client(name)).
        provider: registered client name, "google".
        userinfo_url: profile endpoint queried with the access token.
    """

    def __init__(self, registry, provider: str = "google", userinfo_url: str = GOOGLE_USERINFO_URL) -> None:
        self.registry = registry
        self.provider = provider
        self.userinfo_url = userinfo_url

    def _client(self):
        client = self.registry.create_client(self.provider)
        if client is None:
            raise FederationError(FederationFailure.EXCHANGE_FAILED, f"{self.provider} OAuth is not configured")
        return client

    async def authorize_redirect(self, request, redirect_uri: str):
        """Return the redirect response that starts the provider login."""
        return await self._client().authorize_redirect(request, redirect_uri)

    async def exchange_and_fetch_profile(self, request) -> Profile:
        """Exchange the callback's authorization code and fetch the profile.

        Raises:
            FederationError(EXCHANGE_FAILED): invalid or expired code, state
                mismatch, provider error response or network failure.
            FederationError(PROFILE_INCOMPLETE): the profile has no email.
        """
        client = self._client()
        try:
            token = await client.authorize_access_token(request)
            resp = await client.get(self.userinfo_url, token=token)
            resp.raise_for_status()
            userinfo = resp.json()
        except OAuthError as exc:
            raise FederationError(FederationFailure.EXCHANGE_FAILED, exc.error or str(exc)) from exc
        except httpx.HTTPError as exc:
            raise FederationError(FederationFailure.EXCHANGE_FAILED, str(exc)) from exc

        email = (userinfo.get("email") or "").strip()
        if not email:
            raise FederationError(FederationFailure.PROFILE_INCOMPLETE, f"{self.provider} profile has no email")
        return Profile(email=email, display_name=userinfo.get("name"))
