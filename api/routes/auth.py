"""
api/routes/auth.py -- Credential issuance, exchange and validation endpoints.

Routes:
  POST /auth/login      -- username/password -> local credential
  POST /auth/exchange   -- brick auth token -> local credential
  POST /auth/validate   -- report whether a credential is valid, with its user info
  GET  /auth/me         -- user info of the bearer credential
  GET  /auth/auth-type  -- persisted auth type            (x/layout:read)
  POST /auth/auth-type  -- set auth type: local|sso|both  (x/layout:write)

Security:
  [H2] POST /login and POST /exchange are rate-limited per client IP.
  [C1] AuthService.issue_local() provides timing equalization -- never inline
       the user lookup + password check here.
  [M5] Cache-Control: no-store on responses that carry a credential.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthTypeRequest,
    AuthTypeResponse,
    AuthTypeUpdatedResponse,
    ExchangeRequest,
    LoginRequest,
    TokenResponse,
    UserInfo,
    ValidateRequest,
    ValidateResponse,
)
from auth.dependencies import get_auth_service, get_current_claims, require_permission
from auth.errors import AuthenticationError, InternalError
from auth.models import Claims
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /auth/login:      public, rate-limited
# - POST /auth/exchange:   public, rate-limited
# - POST /auth/validate:   public -- the token in the body is the subject, not the caller
# - GET  /auth/me:         valid bearer credential
# - GET  /auth/auth-type:  x/layout:read
# - POST /auth/auth-type:  x/layout:write
router = APIRouter()

_LOGIN_LIMIT = get_settings().login_rate_limit


def _token_response(token: str) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=TokenResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(_LOGIN_LIMIT)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=TokenResponse)
def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with username and password; return a bearer credential.

    Wrong username and wrong password produce the same 401 body.
    """
    return _token_response(service.issue_local(body.username, body.password))


@limiter.limit(_LOGIN_LIMIT)
@router.post("/auth/exchange", response_model=TokenResponse)
def exchange(
    request: Request,
    body: ExchangeRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Exchange a brick auth token for a local bearer credential."""
    return _token_response(service.exchange(body.brick_auth_token))


@router.post("/auth/validate", response_model=ValidateResponse)
def validate(body: ValidateRequest, service: AuthService = Depends(get_auth_service)) -> ValidateResponse:
    """Validate a credential passed in the body.

    An invalid credential is reported as 500 token_validation_failed, the
    status this endpoint has always used for a failed validation.
    """
    try:
        claims = service.validate(body.token)
    except AuthenticationError as exc:
        raise InternalError("Token validation failed.", code="token_validation_failed") from exc
    return ValidateResponse(valid=True, user_info=UserInfo(**claims.user_info()))


@router.get("/auth/me", response_model=UserInfo)
def me(claims: Claims = Depends(get_current_claims)) -> UserInfo:
    """Return identity information from the bearer credential. No store access."""
    return UserInfo(**claims.user_info())


@router.get(
    "/auth/auth-type",
    response_model=AuthTypeResponse,
    dependencies=[Depends(require_permission("x/layout:read"))],
)
def get_auth_type(service: AuthService = Depends(get_auth_service)) -> AuthTypeResponse:
    return AuthTypeResponse(auth_type=service.get_auth_type().value)


@router.post(
    "/auth/auth-type",
    response_model=AuthTypeUpdatedResponse,
    dependencies=[Depends(require_permission("x/layout:write"))],
)
def set_auth_type(
    body: AuthTypeRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthTypeUpdatedResponse:
    """Persist the auth type. Accepts local, sso or both; anything else is 400."""
    auth_type = service.set_auth_type(body.auth_type)
    return AuthTypeUpdatedResponse(message="Auth type updated", auth_type=auth_type.value)
