"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, authenticators
and routes do the work; these only own the shape.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A persisted account, keyed by email.

    credential_marker is either a bcrypt hash (local signup) or the federated
    sentinel (auth.passwords.FEDERATED_MARKER) for accounts that were created
    by a Google login and have no local password.
    """

    email: str
    credential_marker: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class Principal:
    """The identity attached to an authenticated session for one request.

    Rebuilt from a freshly fetched User row on every restore, so it never
    carries stale account data from login time.
    """

    id: int
    email: str
    auth_method: str  # "local" or "google"
    session_id: str


@dataclass
class SessionRecord:
    """Server-side session entry. Only session_id ever leaves the server."""

    session_id: str
    user_id: int
    auth_method: str
    created_at: str
    expires_at: str


@dataclass
class Profile:
    """Profile returned by the federated identity provider."""

    email: str
    display_name: str | None = None
