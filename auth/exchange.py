"""
auth/exchange.py -- Verification of credentials minted by the external brick auth authority.

The exchange endpoint trusts an external issuer to have authenticated the
caller. This module owns that trust decision: it verifies the external
credential and reduces it to an ExternalPrincipal. Role resolution and local
signing happen in auth/service.py.

Verifier contract:
  verify(token) -> ExternalPrincipal, raising ExternalVerificationError on any
  failure. Callers turn every failure into the same AuthenticationError so
  provider detail never reaches the client.

JwksExternalVerifier uses authlib's JOSE implementation. Key material comes
from either:
  - a JWKS document at BRICK_AUTH_JWKS_URL, fetched with requests on each
    verification (exchange is a login-rate operation; no key cache), or
  - a static PEM public key at BRICK_AUTH_PUBLIC_KEY_PATH.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import requests
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError

from auth.models import ExternalPrincipal
from core.config import Settings

logger = logging.getLogger("brickauth.auth.exchange")

# Asymmetric algorithms only. An external issuer sharing an HMAC secret with
# this service would make every holder of the secret a token minter.
_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "PS256"]

# Module-level session shared across JWKS fetches for connection pooling.
# max_redirects=3 protects against open redirect / SSRF via redirect chains.
_session = requests.Session()
_session.max_redirects = 3


class ExternalVerificationError(Exception):
    """The external credential could not be verified. Message is for logs only."""


class ExternalVerifier(Protocol):
    def verify(self, token: str) -> ExternalPrincipal: ...


class JwksExternalVerifier:
    """Verify external JWTs against a JWKS endpoint or a static public key.

    Args:
        jwks_url:       URL of the issuer's JWKS document.
        public_key:     PEM text of the issuer's public key (used when no jwks_url).
        issuer:         Required iss value. Empty string skips the check.
        audience:       Required aud value. Empty string skips the check.
        username_claim: Claim holding the username; falls back to sub.
        leeway_seconds: Grace period applied to exp/nbf.
    """

    def __init__(
        self,
        jwks_url: str = "",
        public_key: str = "",
        issuer: str = "",
        audience: str = "",
        username_claim: str = "username",
        leeway_seconds: int = 0,
    ) -> None:
        if not jwks_url and not public_key:
            raise ValueError("JwksExternalVerifier needs a jwks_url or a public_key.")
        self.jwks_url = jwks_url
        self._public_key = public_key
        self.issuer = issuer
        self.audience = audience
        self.username_claim = username_claim
        self.leeway_seconds = leeway_seconds
        self._jwt = JsonWebToken(_ALGORITHMS)

    def _load_key(self):
        if not self.jwks_url:
            return self._public_key
        try:
            resp = _session.get(self.jwks_url, timeout=10)
            resp.raise_for_status()
            return JsonWebKey.import_key_set(resp.json())
        except (requests.RequestException, ValueError, JoseError) as exc:
            raise ExternalVerificationError(f"JWKS fetch failed: {exc}") from exc

    def _claims_options(self) -> dict:
        options: dict = {"exp": {"essential": True}, "sub": {"essential": True}}
        if self.issuer:
            options["iss"] = {"essential": True, "value": self.issuer}
        if self.audience:
            options["aud"] = {"essential": True, "value": self.audience}
        return options

    def verify(self, token: str) -> ExternalPrincipal:
        key = self._load_key()
        try:
            claims = self._jwt.decode(token, key, claims_options=self._claims_options())
            claims.validate(leeway=self.leeway_seconds)
        except (JoseError, ValueError) as exc:
            raise ExternalVerificationError(f"external token rejected: {exc}") from exc

        subject = str(claims["sub"])
        username = claims.get(self.username_claim) or subject
        if not isinstance(username, str) or not username:
            raise ExternalVerificationError(f"claim {self.username_claim!r} is not a usable username")
        return ExternalPrincipal(subject=subject, username=username)


def build_external_verifier(settings: Settings) -> ExternalVerifier | None:
    """Return the verifier configured in settings, or None when exchange is disabled."""
    public_key = ""
    if settings.brick_auth_public_key_path:
        public_key = Path(settings.brick_auth_public_key_path).read_text()
    if not settings.brick_auth_jwks_url and not public_key:
        logger.info("No brick auth verifier configured; token exchange is disabled")
        return None
    logger.info("Brick auth verifier configured (%s)", "jwks" if settings.brick_auth_jwks_url else "static key")
    return JwksExternalVerifier(
        jwks_url=settings.brick_auth_jwks_url,
        public_key=public_key,
        issuer=settings.brick_auth_issuer,
        audience=settings.brick_auth_audience,
        username_claim=settings.brick_auth_username_claim,
        leeway_seconds=settings.clock_skew_seconds,
    )
