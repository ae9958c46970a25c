"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
orchestrator do the work; these classes own domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum


class Role(str, Enum):
    USER = "user"
    HOST = "host"
    ADMIN = "admin"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CodePurpose(str, Enum):
    """One-time codes are scoped by purpose; a login code never resets a password."""

    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Account:
    """A marketplace identity: guest user, host or admin.

    password_hash and refresh_token_hash are credential fields. They are only
    populated by the *_with_credentials store reads; every other read path
    returns them as None.

    verification_status is meaningful for hosts only and is None for the
    other roles. is_verified mirrors "status == approved" and is kept as its
    own column because the authorization layer reads it directly.
    """

    name: str
    email: str
    role: Role = Role.USER
    id: str = field(default_factory=_new_id)
    avatar: str | None = None
    password_hash: str | None = None
    refresh_token_hash: str | None = None
    is_oauth_user: bool = False
    is_blocked: bool = False
    is_verified: bool = False
    verification_status: VerificationStatus | None = None
    rejection_reason: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None

    @property
    def is_host(self) -> bool:
        return self.role == Role.HOST

    def without_credentials(self) -> Account:
        return replace(self, password_hash=None, refresh_token_hash=None)


@dataclass
class OneTimeCode:
    """A stored one-time code.

    code_hash is HMAC-SHA256(SECRET_KEY, code). The plaintext code exists only
    in the outgoing mail; a leaked table row cannot be replayed.
    """

    email: str
    code_hash: str
    purpose: CodePurpose = CodePurpose.LOGIN
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The caller behind a verified access token, with the role read from the store."""

    id: str
    email: str
    role: Role


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class AuthResult:
    """Returned by every operation that completes a sign-in."""

    tokens: TokenPair
    account: Account
