"""
auth/service.py -- The auth service object.

AuthService bundles the store, the credential signer and the external
verifier behind the operations the HTTP layer calls. It is built once at
startup (api/main.py lifespan) and passed to request handlers explicitly via
app.state; nothing here is a module-level singleton.

Beyond the store handle the service holds no mutable state: no sessions, no
caches, no locks. Credential validation never touches the store.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from auth.errors import AuthenticationError, ValidationError
from auth.exchange import ExternalVerificationError, ExternalVerifier, build_external_verifier
from auth.gate import authorize, gate
from auth.models import AuthType, Claims, CredentialSource, Role, User
from auth.store import RBACStore
from auth.tokens import TokenSigner, check_credentials, hash_password
from core.config import Settings

logger = logging.getLogger("brickauth.auth")

T = TypeVar("T")


class AuthService:
    """Token lifecycle, permission checks and RBAC administration.

    Args:
        store:                 RBAC repository.
        signer:                RS256 signer shared by login and exchange.
        external_verifier:     Verifier for brick auth tokens; None disables exchange.
        exchange_default_role: Role given to exchanged principals with no local account.
    """

    def __init__(
        self,
        store: RBACStore,
        signer: TokenSigner,
        external_verifier: ExternalVerifier | None = None,
        exchange_default_role: str = "viewer",
    ) -> None:
        self.store = store
        self.signer = signer
        self.external_verifier = external_verifier
        self.exchange_default_role = exchange_default_role

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthService:
        """Wire the service from application settings."""
        signer = TokenSigner(
            private_key=settings.jwt_private_key,
            public_key=settings.jwt_public_key,
            expire_seconds=settings.token_expire_hours * 3600,
            leeway_seconds=settings.clock_skew_seconds,
        )
        return cls(
            store=RBACStore(settings.database_url),
            signer=signer,
            external_verifier=build_external_verifier(settings),
            exchange_default_role=settings.exchange_default_role,
        )

    def close(self) -> None:
        self.store.close()

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    def _permissions_for(self, role_name: str) -> list[str]:
        role = self.store.get_role(role_name)
        if role is None:
            logger.warning("Role %r not found; issuing credential with no permissions", role_name)
            return []
        return role.permissions

    def issue_local(self, username: str, password: str) -> str:
        """Verify a username/password pair and mint a credential.

        Unknown user and wrong password raise the same AuthenticationError so
        the response cannot be used to enumerate usernames.
        """
        user = check_credentials(self.store, username, password)
        if user is None:
            logger.info("Local login failed")
            raise AuthenticationError("Authentication failed.", code="bad_credentials")
        token = self.signer.sign(
            user.username, user.role, self._permissions_for(user.role), source=CredentialSource.local
        )
        logger.info("Issued local credential for %s (role=%s)", user.username, user.role)
        return token

    def exchange(self, external_token: str) -> str:
        """Trade a verified external credential for a local one.

        Role: the matching local account's role if one exists, otherwise the
        configured default role.
        """
        if self.external_verifier is None:
            logger.warning("Token exchange attempted but no external verifier is configured")
            raise AuthenticationError("Token exchange failed.", code="exchange_failed")
        try:
            principal = self.external_verifier.verify(external_token)
        except ExternalVerificationError as exc:
            logger.warning("Token exchange rejected: %s", exc)
            raise AuthenticationError("Token exchange failed.", code="exchange_failed") from exc

        local_user = self.store.get_user(principal.username)
        role = local_user.role if local_user is not None else self.exchange_default_role
        token = self.signer.sign(
            principal.username, role, self._permissions_for(role), source=CredentialSource.exchanged
        )
        logger.info("Exchanged external credential for %s (role=%s)", principal.username, role)
        return token

    def validate(self, token: str) -> Claims:
        """Verify signature and expiry. Raises AuthenticationError when invalid."""
        return self.signer.verify(token)

    def authorize(self, authorization: str | None, required_permission: str) -> Claims:
        """Gate check against an Authorization header value."""
        return authorize(self.validate, authorization, required_permission)

    def gate(self, required_permission: str, operation: Callable[..., T]) -> Callable[..., T]:
        """Wrap operation behind a permission gate bound to this service's validator."""
        return gate(self.validate, required_permission, operation)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def create_user(self, username: str, password: str, role: str) -> None:
        """Create a local account. Raises ConflictError if the username is taken."""
        self.store.create_user(User(username=username, password_hash=hash_password(password), role=role))
        logger.info("Created user %s (role=%s)", username, role)

    def update_user(self, username: str, password: str | None = None, role: str | None = None) -> None:
        if password is None and role is None:
            raise ValidationError("No fields to update.", code="no_changes")
        password_hash = hash_password(password) if password is not None else None
        self.store.update_user(username, password_hash=password_hash, role=role)
        logger.info("Updated user %s", username)

    def delete_user(self, username: str) -> None:
        self.store.delete_user(username)
        logger.info("Deleted user %s", username)

    # ------------------------------------------------------------------
    # Roles and permissions
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        return self.store.list_roles()

    def create_role(self, name: str, permissions: list[str]) -> None:
        self.store.create_role(Role(name=name, permissions=permissions))
        logger.info("Created role %s", name)

    def update_role(self, name: str, permissions: list[str]) -> None:
        self.store.update_role(name, permissions)
        logger.info("Replaced permissions of role %s", name)

    def delete_role(self, name: str) -> None:
        self.store.delete_role(name)
        logger.info("Deleted role %s", name)

    def list_permissions(self) -> list[str]:
        return self.store.list_permissions()

    def set_permissions(self, names: list[str]) -> None:
        self.store.set_permissions(names)
        logger.info("Permission registry replaced (%d entries)", len(set(names)))

    # ------------------------------------------------------------------
    # Auth type
    # ------------------------------------------------------------------

    def get_auth_type(self) -> AuthType:
        return self.store.get_auth_type()

    def set_auth_type(self, value: str) -> AuthType:
        """Persist the auth type. Values outside {local, sso, both} raise ValidationError."""
        try:
            auth_type = AuthType(value)
        except ValueError as exc:
            raise ValidationError("Invalid auth_type.", code="invalid_auth_type") from exc
        self.store.set_auth_type(auth_type)
        return auth_type
