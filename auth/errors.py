"""
auth/errors.py -- Exception taxonomy for the authentication core.

Authentication failures (CredentialError, FederationError) are expected
outcomes: routes turn them into a redirect back to /login. DuplicateEmailError
is shown to the user as "account exists, please log in". StoreUnavailable is
an operator problem: it is logged and answered with a generic 500.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

from enum import Enum


class CredentialFailure(str, Enum):
    USER_NOT_FOUND = "user_not_found"
    INVALID_PASSWORD = "invalid_password"


class FederationFailure(str, Enum):
    EXCHANGE_FAILED = "exchange_failed"
    PROFILE_INCOMPLETE = "profile_incomplete"


class AuthError(Exception):
    """Base class for every error raised by auth/."""


class CredentialError(AuthError):
    """Local email/password verification failed."""

    def __init__(self, reason: CredentialFailure) -> None:
        super().__init__(reason.value)
        self.reason = reason


class FederationError(AuthError):
    """The OAuth exchange or profile fetch did not yield a usable identity."""

    def __init__(self, reason: FederationFailure, detail: str = "") -> None:
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)
        self.reason = reason
        self.detail = detail


class DuplicateEmailError(AuthError):
    """A user row for this email already exists."""

    def __init__(self, email: str) -> None:
        super().__init__(f"An account already exists for {email!r}")
        self.email = email


class StoreUnavailable(AuthError):
    """The credential/session database could not be reached or failed."""
