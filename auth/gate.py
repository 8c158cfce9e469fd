"""
auth/gate.py -- Permission gate for protected operations.

A gate is parameterized by one permission string. It pulls the bearer
credential out of an Authorization header value, validates it, and checks
that the credential's permission snapshot contains the string verbatim.
Only then is the wrapped operation called.

Failure order is fixed:
  1. Missing header, or not "Bearer <token>"  -> AuthenticationError (401)
  2. Credential fails validation              -> AuthenticationError (401)
  3. Permission absent from the credential    -> AuthorizationError (403)

The gate holds no state between calls. auth/dependencies.py adapts it to
FastAPI's Depends() system.

Layer rule: no imports from api/ or fastapi.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from auth.errors import AuthenticationError, AuthorizationError
from auth.models import Claims

logger = logging.getLogger("brickauth.auth")

_BEARER_PREFIX = "Bearer "

T = TypeVar("T")

Validator = Callable[[str], Claims]


def extract_bearer(authorization: str | None) -> str:
    """Return the token from an Authorization header value.

    The scheme match is exact and case-sensitive ("Bearer ").
    """
    if not authorization:
        raise AuthenticationError("Authorization header required.")
    if not authorization.startswith(_BEARER_PREFIX):
        raise AuthenticationError("Invalid authorization format.")
    token = authorization[len(_BEARER_PREFIX) :]
    if not token:
        raise AuthenticationError("Invalid authorization format.")
    return token


def authorize(validate: Validator, authorization: str | None, required_permission: str) -> Claims:
    """Run the full gate check and return the caller's claims."""
    claims = validate(extract_bearer(authorization))
    if not claims.has_permission(required_permission):
        logger.info("Permission %r denied for %s", required_permission, claims.subject)
        raise AuthorizationError("Insufficient permissions.")
    return claims


def gate(validate: Validator, required_permission: str, operation: Callable[..., T]) -> Callable[..., T]:
    """Wrap operation so it runs only for a credential holding required_permission.

    The wrapped callable takes the Authorization header value as its first
    argument; remaining arguments are passed to operation unchanged, as are
    its return value and exceptions.

        list_users = gate(service.validate, "user:read", store.list_users)
        users = list_users(request.headers.get("Authorization"))
    """

    @functools.wraps(operation)
    def wrapped(authorization: str | None, *args: Any, **kwargs: Any) -> T:
        authorize(validate, authorization, required_permission)
        return operation(*args, **kwargs)

    return wrapped
