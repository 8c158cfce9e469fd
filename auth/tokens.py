"""
auth/tokens.py -- Password hashing and RS256 credential signing.

Security design decisions:
  Credentials: python-jose with RS256. The private key signs, the public key
       verifies, so validation needs no secret and no store access. A
       credential carries sub, role, permissions, iat, exp and src (the
       CredentialSource that produced it). Verification raises
       AuthenticationError on any failure -- the route layer turns that into
       a 401.

  Algorithm pinning: verify() accepts RS256 only. Allowing the header to
       choose the algorithm would open the HS256-with-public-key confusion
       attack.

  Expiry: a credential is rejected when now >= exp (+ configured skew).
       python-jose alone accepts the exact second of exp, so the boundary is
       re-checked here.

  Passwords: bcrypt, used directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in check_credentials() so
       response time does not reveal whether a username exists [C1].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import AuthenticationError, InternalError, ValidationError
from auth.models import Claims, CredentialSource

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import RBACStore

logger = logging.getLogger("brickauth.auth")

_ALGORITHM = "RS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------

# bcrypt reads at most 72 bytes of input. The limit is on the UTF-8 encoding,
# not on characters: an accented letter counts twice.
PASSWORD_MAX_BYTES = 72


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > PASSWORD_MAX_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValidationError for passwords over PASSWORD_MAX_BYTES rather than
    letting bcrypt truncate (4.x) or raise ValueError (5.x).
    """
    if password_too_long(plain):
        raise ValidationError(
            f"Password must be at most {PASSWORD_MAX_BYTES} bytes.", code="password_too_long"
        )
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares digests in constant time.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash. Treat as a mismatch.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("brickauth_timing_dummy")


def check_credentials(store: RBACStore, username: str, password: str) -> User | None:
    """Verify a local username/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. Callers must not tell
    the two failure cases apart in their response.
    """
    user = store.get_user(username)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# Credential signing / verification
# ---------------------------------------------------------------------------


class TokenSigner:
    """Mints and verifies RS256 credentials.

    One signer serves both credential sources: login and exchange differ only
    in how the identity was established, not in the credential they produce.

    Args:
        private_key:    PEM text of the RSA private key.
        public_key:     PEM text of the matching public key.
        expire_seconds: Lifetime of issued credentials.
        leeway_seconds: Grace period on exp during verification (0 = strict).
    """

    def __init__(self, private_key: str, public_key: str, expire_seconds: int, leeway_seconds: int = 0) -> None:
        self._private_key = private_key
        self._public_key = public_key
        self.expire_seconds = expire_seconds
        self.leeway_seconds = leeway_seconds

    def sign(
        self,
        subject: str,
        role: str,
        permissions: list[str],
        source: CredentialSource = CredentialSource.local,
        now: datetime | None = None,
    ) -> str:
        """Encode a signed credential. permissions is copied as a snapshot."""
        issued = now or datetime.now(timezone.utc)
        expire = issued + timedelta(seconds=self.expire_seconds)
        payload = {
            "sub": subject,
            "role": role,
            "permissions": list(permissions),
            "iat": int(issued.timestamp()),
            "exp": int(expire.timestamp()),
            "src": source.value,
        }
        try:
            return jwt.encode(payload, self._private_key, algorithm=_ALGORITHM)
        except JWTError as exc:
            logger.error("Credential signing failed: %s", exc)
            raise InternalError("Could not issue credential.") from exc

    def verify(self, token: str, now: datetime | None = None) -> Claims:
        """Verify signature and expiry and return the embedded claims.

        Raises AuthenticationError for malformed tokens, bad signatures,
        missing or ill-typed claims, and expired credentials.
        """
        try:
            payload = jwt.decode(
                token,
                self._public_key,
                algorithms=[_ALGORITHM],
                options={"leeway": self.leeway_seconds},
            )
        except JWTError as exc:
            logger.info("Credential rejected: %s", exc)
            raise AuthenticationError("Invalid token.", code="invalid_token") from exc

        claims = _payload_to_claims(payload)
        if claims is None:
            logger.info("Credential rejected: missing or malformed claims")
            raise AuthenticationError("Invalid token.", code="invalid_token")

        current = int((now or datetime.now(timezone.utc)).timestamp())
        if current >= claims.expires_at + self.leeway_seconds:
            raise AuthenticationError("Invalid token.", code="invalid_token")
        return claims


def _payload_to_claims(payload: dict) -> Claims | None:
    sub = payload.get("sub")
    role = payload.get("role")
    permissions = payload.get("permissions")
    iat = payload.get("iat")
    exp = payload.get("exp")
    if not isinstance(sub, str) or not isinstance(role, str):
        return None
    if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
        return None
    if not isinstance(iat, int) or not isinstance(exp, int):
        return None
    try:
        source = CredentialSource(payload.get("src", CredentialSource.local.value))
    except ValueError:
        return None
    return Claims(
        subject=sub,
        role=role,
        permissions=tuple(permissions),
        issued_at=iat,
        expires_at=exp,
        source=source,
    )
