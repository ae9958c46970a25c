"""
auth/oauth.py -- Verification of third-party identity tokens for OAuth sign-in.

The client completes the provider's sign-in flow (Google via Firebase by
default) and posts the resulting ID token to POST /auth/oauth. This module
checks that token with authlib's JOSE implementation:

  1. Signature: RS256 against the provider's published JWKS. The key set is
     fetched with requests, cached, and refetched once when a token names a
     key id the cache does not know (providers rotate keys).
  2. Claims: exp/iat/nbf, plus iss and aud against OAUTH_ISSUER and
     OAUTH_AUDIENCE. An empty audience disables OAuth sign-in entirely --
     without it any token from any project of the same provider would pass.
  3. Email: must be present and email_verified must be true. An unverified
     address could belong to someone who typed a victim's email.

Every failure is reported as UnauthorizedError with the same message; the
reason goes to the log only.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

import requests
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError

from auth.errors import UnauthorizedError
from core.config import Settings

logger = logging.getLogger("hostgate.auth.oauth")

_JWKS_TTL_SECONDS = 60 * 60

# Module-level session shared across JWKS fetches for connection pooling.
_session = requests.Session()
_session.max_redirects = 3


@dataclass(frozen=True)
class ExternalIdentity:
    email: str
    subject: str
    name: str | None = None
    picture: str | None = None


class IdentityVerifier:
    """Verifies provider ID tokens and returns the identity they assert."""

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audience: str,
        keys: dict | None = None,
        leeway: int = 30,
    ) -> None:
        self._jwks_url = jwks_url
        self._issuer = issuer
        self._audience = audience
        self._leeway = leeway
        self._jwt = JsonWebToken(["RS256"])
        self._lock = threading.Lock()
        # Injected keys are treated as authoritative and never refetched.
        self._pinned = keys is not None
        self._keys = JsonWebKey.import_key_set(keys) if keys is not None else None
        self._fetched_at = time.monotonic() if keys is not None else 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> IdentityVerifier:
        return cls(
            jwks_url=settings.oauth_jwks_url,
            issuer=settings.oauth_issuer,
            audience=settings.oauth_audience,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._audience)

    # ------------------------------------------------------------------
    # Key set
    # ------------------------------------------------------------------

    def _fetch_keys(self):
        try:
            resp = _session.get(self._jwks_url, timeout=10)
            resp.raise_for_status()
            keys = JsonWebKey.import_key_set(resp.json())
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Could not fetch identity provider JWKS: %s", exc)
            raise UnauthorizedError("External identity could not be verified.") from exc
        self._keys = keys
        self._fetched_at = time.monotonic()
        logger.info("Identity provider JWKS refreshed")
        return keys

    def _key_set(self, force: bool = False):
        with self._lock:
            stale = time.monotonic() - self._fetched_at > _JWKS_TTL_SECONDS
            if self._keys is None or (not self._pinned and (force or stale)):
                return self._fetch_keys()
            return self._keys

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def _decode(self, token: str, keys):
        claims_options = {
            "aud": {"essential": True, "value": self._audience},
            "sub": {"essential": True},
            "exp": {"essential": True},
        }
        if self._issuer:
            claims_options["iss"] = {"essential": True, "value": self._issuer}
        claims = self._jwt.decode(token, keys, claims_options=claims_options)
        claims.validate(leeway=self._leeway)
        return claims

    def verify_access_token(self, token: str) -> ExternalIdentity:
        """Return the verified identity or raise UnauthorizedError."""
        if not self.enabled:
            logger.warning("OAuth sign-in attempted but OAUTH_AUDIENCE is not configured")
            raise UnauthorizedError("OAuth sign-in is not available.")
        if not token:
            raise UnauthorizedError("External identity could not be verified.")
        try:
            try:
                claims = self._decode(token, self._key_set())
            except ValueError:
                # Unknown kid: the provider may have rotated its keys.
                if self._pinned:
                    raise
                claims = self._decode(token, self._key_set(force=True))
        except (JoseError, ValueError) as exc:
            logger.info("Rejected external identity token: %s", exc)
            raise UnauthorizedError("External identity could not be verified.") from exc

        email = claims.get("email")
        if not email or claims.get("email_verified") is not True:
            logger.info("Rejected external identity token without a verified email")
            raise UnauthorizedError("External identity could not be verified.")
        return ExternalIdentity(
            email=email.strip().lower(),
            subject=str(claims["sub"]),
            name=claims.get("name"),
            picture=claims.get("picture"),
        )
