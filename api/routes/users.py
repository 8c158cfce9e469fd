"""
api/routes/users.py -- User, role and permission-registry administration.

Routes:
  GET    /user/users               -- list users              (user:read)
  POST   /user/users               -- create user             (user:write)
  PUT    /user/users/{username}    -- update password/role    (user:write)
  DELETE /user/users/{username}    -- delete user             (user:write)
  GET    /user/roles               -- list roles              (role:read)
  POST   /user/roles               -- create role             (role:write)
  PUT    /user/roles/{name}        -- replace role perms      (role:write)
  DELETE /user/roles/{name}        -- delete role             (role:write)
  GET    /user/permissions         -- list registry           (permission:read)
  POST   /user/permissions         -- replace registry        (permission:write)

Every route is behind require_permission(); the permission snapshot in the
caller's credential decides access. Store errors (ConflictError,
NotFoundError) propagate to the handler in api/main.py unchanged.
"""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends

from api.models import MessageResponse, RoleCreate, RoleResponse, RoleUpdate, UserCreate, UserResponse, UserUpdate
from auth.dependencies import get_auth_service, require_permission
from auth.service import AuthService

router = APIRouter()

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get(
    "/user/users",
    response_model=list[UserResponse],
    dependencies=[Depends(require_permission("user:read"))],
)
def list_users(service: AuthService = Depends(get_auth_service)) -> list[UserResponse]:
    """List all users. Password hashes are never returned."""
    return [UserResponse(username=u.username, role=u.role) for u in service.list_users()]


@router.post(
    "/user/users",
    response_model=MessageResponse,
    status_code=201,
    dependencies=[Depends(require_permission("user:write"))],
)
def create_user(body: UserCreate, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.create_user(body.username, body.password, body.role)
    return MessageResponse(message="User created")


@router.put(
    "/user/users/{username}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission("user:write"))],
)
def update_user(
    username: str,
    body: UserUpdate,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Update password and/or role. At least one field is required."""
    service.update_user(username, password=body.password, role=body.role)
    return MessageResponse(message="User updated")


@router.delete(
    "/user/users/{username}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission("user:write"))],
)
def delete_user(username: str, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.delete_user(username)
    return MessageResponse(message="User deleted")


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.get(
    "/user/roles",
    response_model=list[RoleResponse],
    dependencies=[Depends(require_permission("role:read"))],
)
def list_roles(service: AuthService = Depends(get_auth_service)) -> list[RoleResponse]:
    return [RoleResponse(name=r.name, permissions=r.permissions) for r in service.list_roles()]


@router.post(
    "/user/roles",
    response_model=MessageResponse,
    status_code=201,
    dependencies=[Depends(require_permission("role:write"))],
)
def create_role(body: RoleCreate, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.create_role(body.name, body.permissions)
    return MessageResponse(message="Role created")


@router.put(
    "/user/roles/{name}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission("role:write"))],
)
def update_role(name: str, body: RoleUpdate, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Replace the role's permission set. Credentials already issued keep their snapshot."""
    service.update_role(name, body.permissions)
    return MessageResponse(message="Role updated")


@router.delete(
    "/user/roles/{name}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission("role:write"))],
)
def delete_role(name: str, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.delete_role(name)
    return MessageResponse(message="Role deleted")


# ---------------------------------------------------------------------------
# Permission registry
# ---------------------------------------------------------------------------


@router.get(
    "/user/permissions",
    response_model=list[str],
    dependencies=[Depends(require_permission("permission:read"))],
)
def list_permissions(service: AuthService = Depends(get_auth_service)) -> list[str]:
    return service.list_permissions()


@router.post(
    "/user/permissions",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission("permission:write"))],
)
def set_permissions(body: list[str] = Body(...), service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Replace the whole registry in one transaction."""
    service.set_permissions(body)
    return MessageResponse(message="Permissions updated")
