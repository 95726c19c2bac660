"""Unit tests for auth/oauth.py -- the Google authorization-code authenticator.

The authlib client is replaced by FakeGoogleClient (conftest), so these tests
exercise the error mapping and profile extraction, not Google itself.
"""

import httpx
import pytest
from authlib.integrations.starlette_client import OAuthError

from auth.errors import FederationError, FederationFailure
from auth.oauth import FederatedAuthenticator
from conftest import FakeGoogleClient, FakeOAuthRegistry


def _authenticator(client: FakeGoogleClient | None) -> FederatedAuthenticator:
    return FederatedAuthenticator(FakeOAuthRegistry(client), "google")


@pytest.mark.asyncio
async def test_profile_is_extracted() -> None:
    profile = await _authenticator(FakeGoogleClient()).exchange_and_fetch_profile(request=None)
    assert profile.email == "b@x.com"
    assert profile.display_name == "Bea"


@pytest.mark.asyncio
async def test_invalid_code_is_exchange_failure() -> None:
    client = FakeGoogleClient()
    client.exchange_error = OAuthError(error="invalid_grant", description="Bad Request")
    with pytest.raises(FederationError) as excinfo:
        await _authenticator(client).exchange_and_fetch_profile(request=None)
    assert excinfo.value.reason is FederationFailure.EXCHANGE_FAILED
    assert "invalid_grant" in str(excinfo.value)


@pytest.mark.asyncio
async def test_network_failure_is_exchange_failure() -> None:
    client = FakeGoogleClient()
    client.exchange_error = httpx.ConnectError("connection refused")
    with pytest.raises(FederationError) as excinfo:
        await _authenticator(client).exchange_and_fetch_profile(request=None)
    assert excinfo.value.reason is FederationFailure.EXCHANGE_FAILED


@pytest.mark.asyncio
async def test_userinfo_error_status_is_exchange_failure() -> None:
    client = FakeGoogleClient()
    client.userinfo_status = 401
    with pytest.raises(FederationError) as excinfo:
        await _authenticator(client).exchange_and_fetch_profile(request=None)
    assert excinfo.value.reason is FederationFailure.EXCHANGE_FAILED


@pytest.mark.asyncio
@pytest.mark.parametrize("profile", [{"name": "No Email"}, {"email": "", "name": "Blank"}, {"email": "   "}])
async def test_missing_email_is_profile_incomplete(profile: dict) -> None:
    client = FakeGoogleClient()
    client.profile = profile
    with pytest.raises(FederationError) as excinfo:
        await _authenticator(client).exchange_and_fetch_profile(request=None)
    assert excinfo.value.reason is FederationFailure.PROFILE_INCOMPLETE


@pytest.mark.asyncio
async def test_unconfigured_provider() -> None:
    authenticator = _authenticator(None)
    with pytest.raises(FederationError) as excinfo:
        await authenticator.authorize_redirect(request=None, redirect_uri="http://testserver/auth/google/secrets")
    assert excinfo.value.reason is FederationFailure.EXCHANGE_FAILED
