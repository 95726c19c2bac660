"""
web/routes.py -- Jinja2 template routes for the Quillblog web UI.

These routes serve server-rendered HTML and form posts. They share app.state
with the API routes (same SessionManager, authenticators and PostsClient).

Routes:
  GET  /                          -- the principal's posts (auth required, else /home)
  GET  /home                      -- landing page
  GET  /login                     -- login form
  POST /login                     -- email/password login
  GET  /register                  -- registration form
  POST /register                  -- create local account, then log in
  GET  /logout                    -- end session, redirect /
  GET  /auth/google               -- redirect to Google
  GET  /auth/google/secrets       -- Google callback
  GET  /new                       -- new-post form (auth required)
  GET  /edit/{post_id}            -- edit-post form (auth required)
  POST /api/posts                 -- create post via posts API
  POST /api/posts/{post_id}       -- partially update post via posts API
  GET  /api/posts/delete/{post_id} -- delete post via posts API

Failure policy:
  Authentication failures (CredentialError, FederationError) redirect back to
  /login with a whitelisted ?error= code and leave the session Anonymous.
  Duplicate registration redirects to /login?error=account_exists.
  Posts API failures answer 500 with a JSON message. StoreUnavailable and
  anything unexpected fall through to the handlers in api/main.py.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import try_get_current_principal
from auth.errors import CredentialError, DuplicateEmailError, FederationError
from auth.models import Principal
from core.config import get_settings
from posts.client import DownstreamError

logger = logging.getLogger("quillblog.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "account_exists": "An account with that email already exists. Please log in.",
    "oauth_failed": "Google sign-in failed. Please try again.",
}


def _login_failed(error: str) -> RedirectResponse:
    resp = RedirectResponse(f"/login?error={error}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _logged_in() -> RedirectResponse:
    resp = RedirectResponse("/", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


async def _require_auth(request: Request) -> Optional[RedirectResponse]:
    """Return a RedirectResponse to /login if Anonymous, None if OK.

    Call at the top of protected route handlers:
        if redirect := await _require_auth(request):
            return redirect
    The principal is then available as request.state.principal.
    """
    if await try_get_current_principal(request) is None:
        return RedirectResponse("/login", status_code=302)
    return None


def _downstream_failed(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"message": message})


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    if await try_get_current_principal(request) is None:
        return RedirectResponse("/home", status_code=302)
    principal: Principal = request.state.principal
    try:
        posts = await request.app.state.posts.list_posts(principal)
    except DownstreamError:
        return _downstream_failed("Error fetching posts")
    return templates.TemplateResponse(request, "index.html", {"posts": posts, "principal": principal})


@router.get("/home", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {})


# ---------------------------------------------------------------------------
# Auth routes -- login, register, logout, Google
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
async def login_form(request: Request):
    """Render the login page with the email/password form and the Google button."""
    if await try_get_current_principal(request) is not None:
        return RedirectResponse("/", status_code=302)
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": error_msg, "google_enabled": get_settings().google_enabled},
    )


@router.post("/login")
async def login_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
) -> RedirectResponse:
    """Handle the login form. The form field is named username but holds the email.

    Blank fields are a failed login like any other, not a validation error.
    """
    if not username.strip() or not password:
        return _login_failed("bad_credentials")
    try:
        user = await request.app.state.local_auth.verify(username, password)
    except CredentialError as exc:
        logger.info("Login rejected (%s)", exc.reason.value)
        return _login_failed("bad_credentials")
    await request.app.state.session_manager.login(request, user, "local")
    return _logged_in()


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "register.html", {})


@router.post("/register")
async def register_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
):
    """Create a local account and log it in.

    An existing email -- from either login method -- is never overwritten;
    the user is sent to the login page instead.
    """
    email = username.strip()
    if not email or not password:
        return templates.TemplateResponse(
            request,
            "register.html",
            {"error_msg": "Email and password are required."},
            status_code=400,
        )
    try:
        user = await request.app.state.reconciler.reconcile_local_signup(email, password)
    except DuplicateEmailError:
        return _login_failed("account_exists")
    await request.app.state.session_manager.login(request, user, "local")
    return _logged_in()


@router.get("/logout")
async def logout(request: Request) -> RedirectResponse:
    await request.app.state.session_manager.logout(request)
    return RedirectResponse("/", status_code=302)


@router.get("/auth/google")
async def google_redirect(request: Request):
    """Send the browser to Google's consent page (scope: profile, email)."""
    redirect_uri = get_settings().google_callback_url or str(request.url_for("google_callback"))
    try:
        return await request.app.state.federated_auth.authorize_redirect(request, redirect_uri)
    except FederationError as exc:
        logger.warning("Google redirect unavailable: %s", exc)
        return _login_failed("oauth_failed")


@router.get("/auth/google/secrets", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Handle Google's callback: exchange the code, reconcile by email, start a session.

    The matched row is used as-is even if it was created by local signup --
    Google's verified email is the only proof required.
    """
    try:
        profile = await request.app.state.federated_auth.exchange_and_fetch_profile(request)
    except FederationError as exc:
        logger.warning("Google login rejected: %s", exc)
        return _login_failed("oauth_failed")
    user = await request.app.state.reconciler.reconcile_federated_login(profile.email)
    await request.app.state.session_manager.login(request, user, "google")
    return _logged_in()


# ---------------------------------------------------------------------------
# Post routes -- every call forwards the session principal
# ---------------------------------------------------------------------------


@router.get("/new", response_class=HTMLResponse)
async def new_post_form(request: Request):
    if redirect := await _require_auth(request):
        return redirect
    return templates.TemplateResponse(request, "modify.html", {"heading": "New Post", "submit": "Create Post"})


@router.get("/edit/{post_id}", response_class=HTMLResponse)
async def edit_post_form(request: Request, post_id: int):
    if redirect := await _require_auth(request):
        return redirect
    try:
        post = await request.app.state.posts.get_post(request.state.principal, post_id)
    except DownstreamError:
        return _downstream_failed("Error fetching post")
    return templates.TemplateResponse(
        request,
        "modify.html",
        {"heading": "Edit Post", "submit": "Update Post", "post": post},
    )


@router.post("/api/posts")
async def create_post(
    request: Request,
    title: str = Form(...),
    content: str = Form(...),
    author: str = Form(...),
):
    if redirect := await _require_auth(request):
        return redirect
    try:
        await request.app.state.posts.create_post(request.state.principal, title, content, author)
    except DownstreamError:
        return _downstream_failed("Error creating post")
    return RedirectResponse("/", status_code=302)


@router.post("/api/posts/{post_id}")
async def update_post(
    request: Request,
    post_id: int,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    author: Optional[str] = Form(None),
):
    if redirect := await _require_auth(request):
        return redirect
    fields = {"title": title, "content": content, "author": author}
    try:
        await request.app.state.posts.update_post(request.state.principal, post_id, fields)
    except DownstreamError:
        return _downstream_failed("Error updating post")
    return RedirectResponse("/", status_code=302)


@router.get("/api/posts/delete/{post_id}")
async def delete_post(request: Request, post_id: int):
    if redirect := await _require_auth(request):
        return redirect
    try:
        await request.app.state.posts.delete_post(request.state.principal, post_id)
    except DownstreamError:
        return _downstream_failed("Error deleting post")
    return RedirectResponse("/", status_code=302)
