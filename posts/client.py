"""
posts/client.py -- Forward authenticated requests to the posts API.

The posts API has no login of its own: it scopes every read and write to the
numeric user id supplied by the caller. This client is therefore the trust
boundary. Every call takes the session Principal and attaches:

  - principal.id as the id parameter the posts API expects
    (?id= on reads and deletes, "id" in the JSON body on create/update), and
  - an X-Identity-Assertion header (auth.tokens) so the posts API can verify
    that id instead of taking it on faith.

Callers never pass a user id themselves -- only a Principal.

Every call is bounded by Settings.posts_api_timeout. Transport failures and
non-2xx responses raise DownstreamError; the route layer turns that into a
500 response.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from auth.models import Principal
from auth.tokens import create_identity_assertion

logger = logging.getLogger("quillblog.posts")

ASSERTION_HEADER = "X-Identity-Assertion"


class DownstreamError(Exception):
    """The posts API could not be reached or rejected the request."""


class PostsClient:
    """Async client for the posts API.

    Usage:
        client = PostsClient("http://localhost:4000")
        posts = await client.list_posts(principal)
        await client.aclose()

    Args:
        base_url:  Posts API root URL.
        timeout:   Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def list_posts(self, principal: Principal) -> list[dict[str, Any]]:
        """Return every post owned by the principal."""
        return await self._request("GET", "/posts", principal, params={"id": principal.id}) or []

    async def get_post(self, principal: Principal, post_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/posts/{post_id}", principal, params={"id": principal.id})

    async def create_post(self, principal: Principal, title: str, content: str, author: str) -> Any:
        body = {"id": principal.id, "title": title, "content": content, "author": author}
        return await self._request("POST", "/posts", principal, json=body)

    async def update_post(self, principal: Principal, post_id: int, fields: dict[str, Any]) -> None:
        """Partially update a post. Empty fields are left unchanged."""
        body = {k: v for k, v in fields.items() if v not in (None, "")}
        body["id"] = principal.id
        await self._request("PATCH", f"/posts/{post_id}", principal, json=body)

    async def delete_post(self, principal: Principal, post_id: int) -> None:
        await self._request("DELETE", f"/posts/{post_id}", principal, params={"id": principal.id})

    async def _request(self, method: str, path: str, principal: Principal, **kwargs) -> Any:
        headers = {ASSERTION_HEADER: create_identity_assertion(principal.id, principal.email)}
        try:
            resp = await self._http.request(method, path, headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Posts API %s %s failed for user_id=%s: %s", method, path, principal.id, exc)
            raise DownstreamError(f"{method} {path} failed") from exc
        # PATCH/DELETE answer with a bare status ("OK"), not JSON.
        if "application/json" not in resp.headers.get("content-type", ""):
            return None
        return resp.json()

    async def aclose(self) -> None:
        await self._http.aclose()
