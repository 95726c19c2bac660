"""
auth/passwords.py -- Password hashing and the local email/password authenticator.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The cost factor comes
       from Settings.password_work_factor (default 10) at hash time; the cost
       is embedded in each hash, so raising it only affects new hashes.

  Sentinel: accounts created by a Google login store FEDERATED_MARKER instead
       of a hash. is_password_hash() distinguishes the two, so the sentinel can
       never be "guessed" as a password.

  Timing: LocalAuthenticator.verify() always runs one bcrypt comparison --
       against _DUMMY_HASH when the account is missing or has no password --
       so response time does not reveal whether an email is registered.

  bcrypt is CPU-bound; the authenticator runs it in the thread pool so the
  event loop keeps serving other requests.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

import logging

import bcrypt
from starlette.concurrency import run_in_threadpool

from auth.errors import CredentialError, CredentialFailure
from auth.models import User
from auth.store import CredentialStore
from core.config import get_settings

logger = logging.getLogger("quillblog.auth")

# Written to users.password for accounts that must authenticate via Google.
FEDERATED_MARKER = "google"


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; longer inputs are truncated
    explicitly because bcrypt 4.x rejects them.
    """
    cost = rounds if rounds is not None else get_settings().password_work_factor
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        return False


def is_password_hash(marker: str) -> bool:
    return marker.startswith("$2")


# Computed once at import so the first failed login is not measurably slower.
_DUMMY_HASH: str = hash_password("quillblog_timing_dummy")


class LocalAuthenticator:
    """Verify an email/password pair against the credential store."""

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    async def verify(self, email: str, password: str) -> User:
        """Return the matching User or raise CredentialError.

        USER_NOT_FOUND: no row for this email.
        INVALID_PASSWORD: the row is federated-only, or the password is wrong.
        """
        user = await self.store.find_by_email(email)
        if user is None:
            await run_in_threadpool(verify_password, password, _DUMMY_HASH)
            raise CredentialError(CredentialFailure.USER_NOT_FOUND)
        if not is_password_hash(user.credential_marker):
            await run_in_threadpool(verify_password, password, _DUMMY_HASH)
            raise CredentialError(CredentialFailure.INVALID_PASSWORD)
        if not await run_in_threadpool(verify_password, password, user.credential_marker):
            raise CredentialError(CredentialFailure.INVALID_PASSWORD)
        return user
