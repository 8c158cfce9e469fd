"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Credentials arrive only as an "Authorization: Bearer <token>" header. There
is no cookie or API key path: the service is stateless and every caller
presents a signed credential.

get_auth_service() returns the AuthService built in the lifespan.
get_current_claims() raises 401 on a missing or invalid credential.
require_permission(p) builds a dependency that additionally raises 403 when
the credential's permission snapshot lacks p.

The errors raised here are auth.errors classes, not HTTPException; the
handler registered in api/main.py maps them to status codes.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.gate import extract_bearer
from auth.models import Claims
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_current_claims(request: Request) -> Claims:
    """Require a valid bearer credential.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: Claims = Depends(get_current_claims)): ...
    """
    service = get_auth_service(request)
    return service.validate(extract_bearer(request.headers.get("Authorization")))


def require_permission(permission: str) -> Callable[[Request], Claims]:
    """Build a dependency that admits only credentials holding permission.

    Use as a FastAPI dependency:
        @router.get("/users", dependencies=[Depends(require_permission("user:read"))])
    """

    def dependency(request: Request) -> Claims:
        service = get_auth_service(request)
        return service.authorize(request.headers.get("Authorization"), permission)

    dependency.__name__ = f"require_{permission.replace(':', '_').replace('/', '_')}"
    return dependency
