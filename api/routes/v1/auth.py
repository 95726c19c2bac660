"""
api/routes/v1/auth.py -- JSON authentication endpoints.

Routes:
  POST /api/v1/auth/login   -- email/password login; starts a session cookie
  POST /api/v1/auth/logout  -- ends the session; 200
  GET  /api/v1/auth/me      -- current principal (requires auth)

These share the SessionManager with the HTML routes in web/routes.py, so a
session started here is valid there and vice versa.

Security:
  Wrong email and wrong password return the same "bad_credentials" error so
  the response does not reveal which emails are registered.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, LoginRequest, MeResponse
from auth.dependencies import get_current_principal
from auth.errors import CredentialError
from auth.models import Principal

logger = logging.getLogger("quillblog.api")

router = APIRouter()


@router.post("/auth/login", response_model=MeResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; attach a new session to the cookie."""
    try:
        user = await request.app.state.local_auth.verify(body.email, body.password)
    except CredentialError as exc:
        logger.info("API login rejected (%s)", exc.reason.value)
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid email or password.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    principal = await request.app.state.session_manager.login(request, user, "local")
    resp = JSONResponse(content=_principal_to_response(principal).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout(request: Request) -> JSONResponse:
    """End the session. Safe to call when already logged out."""
    await request.app.state.session_manager.logout(request)
    return JSONResponse(content={"message": "Logged out."})


@router.get("/auth/me", response_model=MeResponse)
async def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    """Return identity information for the authenticated session."""
    return _principal_to_response(principal)


def _principal_to_response(principal: Principal) -> MeResponse:
    return MeResponse(user_id=principal.id, email=principal.email, auth_method=principal.auth_method)
