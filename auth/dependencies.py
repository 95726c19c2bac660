"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session cookie is the single credential source for requests. Every
helper below resolves it through the SessionManager wired onto
app.state.session_manager, and caches the result on request.state so one
request never restores its session twice.

try_get_current_principal() is the soft variant (returns None when Anonymous).
get_current_principal() wraps it and raises HTTP 401.

Layer rule: no imports from web/ or posts/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Principal

_UNRESOLVED = object()


async def try_get_current_principal(request: Request) -> Principal | None:
    """Return the session's Principal, or None if the request is Anonymous.

    Never raises for an anonymous or stale session. StoreUnavailable does
    propagate -- an unreachable database is a server error, not a logout.
    """
    cached = getattr(request.state, "principal", _UNRESOLVED)
    if cached is not _UNRESOLVED:
        return cached
    principal = await request.app.state.session_manager.restore(request)
    request.state.principal = principal
    return principal


async def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is Anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = await try_get_current_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal
