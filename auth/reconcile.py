"""
auth/reconcile.py -- Map a verified credential to exactly one users row.

Email is the reconciliation key for both login methods. Consequences that are
deliberate product behaviour, covered by tests:

  - An account created by local signup can also sign in with Google for the
    same email, without its password.
  - An account created by Google has the federated marker instead of a hash,
    so it cannot sign in locally and cannot be re-registered locally.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from auth.errors import DuplicateEmailError
from auth.models import User
from auth.passwords import FEDERATED_MARKER, hash_password
from auth.store import CredentialStore

logger = logging.getLogger("quillblog.auth")


class IdentityReconciler:
    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    async def reconcile_local_signup(self, email: str, password: str) -> User:
        """Create a local account. Raises DuplicateEmailError if the email exists.

        Registration is create-only: an existing row is never touched, whichever
        method created it.
        """
        if await self.store.find_by_email(email) is not None:
            raise DuplicateEmailError(email)
        hashed = await run_in_threadpool(hash_password, password)
        user = await self.store.create(email, hashed)
        logger.info("Local account created (user_id=%s)", user.id)
        return user

    async def reconcile_federated_login(self, email: str) -> User:
        """Return the row for this email, creating a federated-only one if absent.

        Idempotent. If a concurrent login inserts the same email between our
        lookup and insert, the winner's row is returned.
        """
        user = await self.store.find_by_email(email)
        if user is not None:
            return user
        try:
            user = await self.store.create(email, FEDERATED_MARKER)
        except DuplicateEmailError:
            user = await self.store.find_by_email(email)
            if user is None:
                raise
            return user
        logger.info("Federated account created (user_id=%s)", user.id)
        return user
