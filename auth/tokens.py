"""
auth/tokens.py -- Access/refresh JWTs and refresh-token fingerprints.

Security design decisions:
  JWT: python-jose with HS256. Access tokens carry sub (account id), email,
       role and type="access". Refresh tokens carry sub, email and
       type="refresh" -- no role, so a leaked long-lived token cannot pin a
       stale role; the role is re-read from the store on every refresh.

  Separate keys: refresh tokens are signed with REFRESH_SECRET_KEY (falls
       back to SECRET_KEY). The "type" claim is checked on verify as well, so
       an access token is never accepted where a refresh token is expected
       even when both keys are the same.

  jti: every token carries a random jti. Two tokens issued for the same
       account within the same second therefore differ, which keeps
       rotation observable.

  Fingerprints: the store never keeps a raw refresh token. It keeps
       HMAC-SHA256(SECRET_KEY, token), the same keyed-hash approach used for
       one-time codes. The token already has 256+ bits of entropy from its
       signature, so bcrypt's slowness buys nothing here.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidTokenError
from core.config import Settings

logger = logging.getLogger("hostgate.auth")

_ALGORITHM = "HS256"
_ACCESS = "access"
_REFRESH = "refresh"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def keyed_digest(secret: str, value: str) -> str:
    """Return HMAC-SHA256(secret, value) as a hex string."""
    return hmac.new(secret.encode(), value.encode(), hashlib.sha256).hexdigest()


class TokenService:
    """Signs and verifies the two token kinds for one Settings instance."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> None:
        self._access_key = settings.secret_key
        self._refresh_key = settings.refresh_secret_key or settings.secret_key
        self._fingerprint_key = settings.secret_key
        self.access_ttl = settings.access_token_expire_seconds
        self.refresh_ttl = settings.refresh_token_expire_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def _encode(self, claims: dict, token_type: str, ttl: int, key: str) -> str:
        now = self._clock()
        payload = {
            **claims,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl)).timestamp()),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, key, algorithm=_ALGORITHM)

    def create_access_token(self, identity: dict) -> str:
        """Encode a short-lived token from {id, email, role}."""
        role = identity["role"]
        claims = {
            "sub": str(identity["id"]),
            "email": identity["email"],
            "role": getattr(role, "value", role),
        }
        return self._encode(claims, _ACCESS, self.access_ttl, self._access_key)

    def create_refresh_token(self, identity: dict) -> str:
        """Encode a long-lived token from {id, email}. Any role key is ignored."""
        claims = {"sub": str(identity["id"]), "email": identity["email"]}
        return self._encode(claims, _REFRESH, self.refresh_ttl, self._refresh_key)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def _decode(self, token: str, token_type: str, key: str) -> dict:
        if not token:
            raise InvalidTokenError("Token is missing.")
        try:
            claims = jwt.decode(token, key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            # ExpiredSignatureError and JWTClaimsError both derive from JWTError.
            raise InvalidTokenError(f"Invalid {token_type} token.") from exc
        if claims.get("type") != token_type or "sub" not in claims or "email" not in claims:
            raise InvalidTokenError(f"Invalid {token_type} token.")
        return claims

    def verify_access_token(self, token: str) -> dict:
        claims = self._decode(token, _ACCESS, self._access_key)
        if "role" not in claims:
            raise InvalidTokenError("Invalid access token.")
        return claims

    def verify_refresh_token(self, token: str) -> dict:
        return self._decode(token, _REFRESH, self._refresh_key)

    def fingerprint(self, token: str) -> str:
        """Return the keyed digest stored in place of a raw refresh token."""
        return keyed_digest(self._fingerprint_key, token)

    def matches(self, token: str, stored_fingerprint: str | None) -> bool:
        if not stored_fingerprint:
            return False
        return hmac.compare_digest(self.fingerprint(token), stored_fingerprint)
