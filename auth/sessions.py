"""
auth/sessions.py -- Session lifecycle: login, restore, logout.

States: Anonymous (no session id in the cookie, or an id that no longer
resolves) and Authenticated (the id resolves to a live SessionRecord whose
user row still exists).

Transport: Starlette's SessionMiddleware keeps a signed cookie. The only
thing this module puts in it is the opaque session id under SESSION_KEY;
the user data lives server-side in SessionStore and the users table.

Restore re-reads the user row on every request instead of trusting a copy
taken at login, so account changes apply immediately and a deleted account
cannot keep an orphaned session.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

import logging

from auth.models import Principal, User
from auth.store import CredentialStore, SessionStore

logger = logging.getLogger("quillblog.auth.sessions")

SESSION_KEY = "sid"


class SessionManager:
    def __init__(self, sessions: SessionStore, users: CredentialStore, ttl_seconds: int) -> None:
        self.sessions = sessions
        self.users = users
        self.ttl_seconds = ttl_seconds

    async def login(self, request, user: User, auth_method: str) -> Principal:
        """Anonymous -> Authenticated. Any previous session for this client is dropped."""
        await self._drop(request)
        record = await self.sessions.create(user.id, auth_method, self.ttl_seconds)
        request.session[SESSION_KEY] = record.session_id
        principal = Principal(
            id=user.id,
            email=user.email,
            auth_method=auth_method,
            session_id=record.session_id,
        )
        request.state.principal = principal
        logger.info("Session started (user_id=%s, method=%s)", user.id, auth_method)
        return principal

    async def restore(self, request) -> Principal | None:
        """Resolve the cookie's session id to a Principal, or None when Anonymous.

        Stale ids (unknown, expired, or pointing at a missing user) are removed
        from both the cookie and the session table.
        """
        session_id = request.session.get(SESSION_KEY)
        if not session_id:
            return None

        record = await self.sessions.get(session_id)
        if record is None:
            request.session.pop(SESSION_KEY, None)
            return None
        if self.sessions.is_expired(record):
            await self._drop(request)
            return None

        user = await self.users.find_by_id(record.user_id)
        if user is None:
            logger.warning("Dropping session for missing user_id=%s", record.user_id)
            await self._drop(request)
            return None

        return Principal(
            id=user.id,
            email=user.email,
            auth_method=record.auth_method,
            session_id=record.session_id,
        )

    async def logout(self, request) -> None:
        """Authenticated -> Anonymous."""
        await self._drop(request)
        request.state.principal = None

    async def _drop(self, request) -> None:
        session_id = request.session.pop(SESSION_KEY, None)
        if session_id:
            await self.sessions.delete(session_id)
