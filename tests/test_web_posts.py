"""
tests/test_web_posts.py -- Integration tests for the post pages and forwarding routes.

FakePostsAPI records what the posts API would receive; every assertion on
forwarding compares the id it saw with the id of the logged-in row.
"""

from __future__ import annotations

import json

import pytest

from conftest import WebEnv, register, user_rows


@pytest.fixture
def logged_in(web_env: WebEnv) -> int:
    """Register and log in a@x.com; return its user id."""
    register(web_env.client, "a@x.com", "pw1")
    return user_rows(web_env.db_path)[0]["id"]


class TestAnonymous:
    def test_index_redirects_home(self, web_env: WebEnv) -> None:
        resp = web_env.client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/home"
        assert web_env.posts_api.requests == []

    def test_home_renders(self, web_env: WebEnv) -> None:
        assert web_env.client.get("/home").status_code == 200

    @pytest.mark.parametrize("path", ["/new", "/edit/7", "/api/posts/delete/7"])
    def test_protected_pages_redirect_to_login(self, web_env: WebEnv, path: str) -> None:
        resp = web_env.client.get(path)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert web_env.posts_api.requests == []

    def test_create_redirects_to_login(self, web_env: WebEnv) -> None:
        resp = web_env.client.post("/api/posts", data={"title": "t", "content": "c", "author": "a"})
        assert resp.headers["location"] == "/login"
        assert web_env.posts_api.requests == []


class TestForwarding:
    def test_index_lists_posts_for_principal(self, web_env: WebEnv, logged_in: int) -> None:
        resp = web_env.client.get("/")

        assert resp.status_code == 200
        assert "Hello" in resp.text
        (request,) = web_env.posts_api.requests
        assert request.url.path == "/posts"
        assert request.url.params["id"] == str(logged_in)

    def test_edit_form_fetches_post(self, web_env: WebEnv, logged_in: int) -> None:
        resp = web_env.client.get("/edit/7")

        assert resp.status_code == 200
        assert "Hello" in resp.text
        assert web_env.posts_api.requests[-1].url.path == "/posts/7"

    def test_new_form_renders(self, web_env: WebEnv, logged_in: int) -> None:
        resp = web_env.client.get("/new")
        assert resp.status_code == 200
        assert "New Post" in resp.text

    def test_create_forwards_id(self, web_env: WebEnv, logged_in: int) -> None:
        resp = web_env.client.post("/api/posts", data={"title": "T", "content": "C", "author": "Ada"})

        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        request = web_env.posts_api.requests[-1]
        assert request.method == "POST"
        assert json.loads(request.content)["id"] == logged_in

    def test_update_forwards_only_given_fields(self, web_env: WebEnv, logged_in: int) -> None:
        resp = web_env.client.post("/api/posts/7", data={"title": "New"})

        assert resp.status_code == 302
        request = web_env.posts_api.requests[-1]
        assert request.method == "PATCH"
        assert json.loads(request.content) == {"title": "New", "id": logged_in}

    def test_delete_forwards_id(self, web_env: WebEnv, logged_in: int) -> None:
        resp = web_env.client.get("/api/posts/delete/7")

        assert resp.status_code == 302
        request = web_env.posts_api.requests[-1]
        assert request.method == "DELETE"
        assert request.url.params["id"] == str(logged_in)

    def test_google_principal_forwards_its_own_id(self, web_env: WebEnv) -> None:
        register(web_env.client, "a@x.com", "pw1")
        web_env.client.get("/logout")
        web_env.client.get("/auth/google/secrets?code=c&state=s")
        google_id = next(r["id"] for r in user_rows(web_env.db_path) if r["email"] == "b@x.com")

        web_env.client.get("/")

        assert web_env.posts_api.requests[-1].url.params["id"] == str(google_id)


class TestDownstreamFailure:
    def test_list_failure_is_500_with_message(self, web_env: WebEnv, logged_in: int) -> None:
        web_env.posts_api.fail = True

        resp = web_env.client.get("/")

        assert resp.status_code == 500
        assert resp.json() == {"message": "Error fetching posts"}

    def test_create_failure_is_500_with_message(self, web_env: WebEnv, logged_in: int) -> None:
        web_env.posts_api.fail = True

        resp = web_env.client.post("/api/posts", data={"title": "T", "content": "C", "author": "Ada"})

        assert resp.status_code == 500
        assert resp.json() == {"message": "Error creating post"}
