"""
tests/conftest.py -- Shared test fixtures for Quillblog.

This module provides:
  - engine: async fixture over a fresh SQLite file per test (tmp_path),
    schema created, engine disposed after. credential_store and
    session_store wrap it.
  - FakeGoogleClient / FakeOAuthRegistry: stand-ins for authlib's Starlette
    client so no test talks to Google.
  - FakePostsAPI: an httpx.MockTransport handler that records every request
    the forwarder sends and answers like the posts API.
  - web_env: TestClient over the real app with a patched lifespan
    (follow_redirects=False so tests can assert on Location headers).

Design: a file-backed SQLite database per test rather than :memory:. The
pooled async engine may open more than one connection, and every connection
to a plain :memory: URL gets its own blank database.

The DEBUG env var must be set before any app import so get_settings()
auto-generates SESSION_SECRET and IDENTITY_ASSERTION_SECRET in dev mode
rather than raising ValueError.
PASSWORD_WORK_FACTOR=4 keeps bcrypt fast in tests.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

# CRITICAL: Set env before any auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("PASSWORD_WORK_FACTOR", "4")

import httpx
import pytest
import pytest_asyncio
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

from api.main import wire_services
from asgi import app
from auth.store import CredentialStore, SessionStore, create_store_engine, init_schema
from posts.client import PostsClient

SAMPLE_POST = {"id": 7, "title": "Hello", "content": "World", "author": "Ada", "date": "2026-01-01T00:00:00Z"}

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeGoogleClient:
    """Mimics the authlib Starlette OAuth client methods the authenticator uses."""

    def __init__(self) -> None:
        self.profile: dict = {"email": "b@x.com", "name": "Bea"}
        self.exchange_error: Exception | None = None
        self.userinfo_status = 200

    async def authorize_redirect(self, request, redirect_uri: str) -> RedirectResponse:
        return RedirectResponse(f"https://accounts.google.test/auth?redirect_uri={redirect_uri}", status_code=302)

    async def authorize_access_token(self, request) -> dict:
        if self.exchange_error is not None:
            raise self.exchange_error
        return {"access_token": "fake-access-token", "token_type": "Bearer"}

    async def get(self, url: str, token=None) -> httpx.Response:
        return httpx.Response(self.userinfo_status, json=self.profile, request=httpx.Request("GET", url))


class FakeOAuthRegistry:
    def __init__(self, client: FakeGoogleClient | None) -> None:
        self.client = client

    def create_client(self, name: str):
        return self.client if name == "google" else None


class FakePostsAPI:
    """Records forwarded requests and answers like the posts API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(500, json={"message": "boom"})
        if request.method == "GET" and request.url.path == "/posts":
            return httpx.Response(200, json=[SAMPLE_POST])
        if request.method == "GET":
            return httpx.Response(200, json=SAMPLE_POST)
        if request.method == "POST":
            return httpx.Response(200, json=[])
        return httpx.Response(200, text="OK")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_store_engine(sqlite_url(tmp_path / "auth.db"))
    await init_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def credential_store(engine) -> CredentialStore:
    return CredentialStore(engine)


@pytest.fixture
def session_store(engine) -> SessionStore:
    return SessionStore(engine)


def user_rows(db_path: Path) -> list[dict]:
    """Read the users table directly, bypassing the app."""
    eng = create_engine(f"sqlite:///{db_path}")
    try:
        with eng.connect() as conn:
            rows = conn.execute(text("SELECT id, email, password FROM users ORDER BY id")).mappings().all()
        return [dict(r) for r in rows]
    finally:
        eng.dispose()


# ---------------------------------------------------------------------------
# Web fixtures
# ---------------------------------------------------------------------------


@dataclass
class WebEnv:
    client: TestClient
    db_path: Path
    google: FakeGoogleClient
    posts_api: FakePostsAPI


def _patch_lifespan(db_url: str, registry: FakeOAuthRegistry, posts_api: FakePostsAPI):
    """Return an async context manager that replaces the real lifespan.

    Builds the same service graph as production via wire_services(), but on
    a per-test database, the fake Google registry and the fake posts API.
    The engine is created inside the lifespan so it binds to the TestClient's
    event loop.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        eng = create_store_engine(db_url)
        await init_schema(eng)
        posts = PostsClient("http://posts.test", transport=posts_api.transport())
        wire_services(app, eng, registry, posts)
        yield
        await posts.aclose()
        await eng.dispose()

    return test_lifespan


@pytest.fixture
def web_env(tmp_path) -> Generator[WebEnv, None, None]:
    """Yield a WebEnv whose client starts Anonymous on an empty database."""
    db_path = tmp_path / "web.db"
    google = FakeGoogleClient()
    posts_api = FakePostsAPI()
    app.router.lifespan_context = _patch_lifespan(sqlite_url(db_path), FakeOAuthRegistry(google), posts_api)

    with TestClient(app, follow_redirects=False) as client:
        yield WebEnv(client=client, db_path=db_path, google=google, posts_api=posts_api)


def register(client: TestClient, email: str, password: str) -> httpx.Response:
    return client.post("/register", data={"username": email, "password": password})


def login(client: TestClient, email: str, password: str) -> httpx.Response:
    return client.post("/login", data={"username": email, "password": password})
