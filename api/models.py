"""
API request and response models for HostGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the domain shape.
Route handlers map between the two.

Request models only check shape and size. Email syntax, password rules and
role policy are enforced by the orchestrator, so the CLI and the HTTP layer
share one set of rules.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, Role, VerificationStatus

# ---------------------------------------------------------------------------
# Request models -- auth
# ---------------------------------------------------------------------------


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class SignupRequest(_Request):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=255)
    role: Role = Role.USER


class SigninRequest(_Request):
    """role scopes the sign-in, e.g. the host console sends role="host"."""

    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=255)
    role: Optional[Role] = None


class OtpVerifyRequest(_Request):
    email: str = Field(min_length=3, max_length=320)
    otp: str = Field(min_length=4, max_length=10)
    role: Optional[Role] = None


class ResendOtpRequest(_Request):
    email: str = Field(min_length=3, max_length=320)
    role: Optional[Role] = None


class RefreshRequest(_Request):
    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class LogoutRequest(_Request):
    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class OAuthRequest(_Request):
    """access_token is the identity provider's ID token, not one of ours."""

    name: str = Field(default="", max_length=255)
    email: str = Field(min_length=3, max_length=320)
    access_token: str = Field(min_length=1, max_length=8192)
    avatar: Optional[str] = Field(default=None, max_length=2048)
    role: Optional[Role] = None


class ForgotPasswordRequest(_Request):
    email: str = Field(min_length=3, max_length=320)
    role: Optional[Role] = None


class ResetPasswordRequest(_Request):
    email: str = Field(min_length=3, max_length=320)
    otp: str = Field(min_length=4, max_length=10)
    password: str = Field(min_length=1, max_length=255)
    role: Optional[Role] = None


# ---------------------------------------------------------------------------
# Request models -- admin
# ---------------------------------------------------------------------------


class HostDecisionRequest(_Request):
    """Body for approve / reapply. Accepts hostId (client casing) or host_id."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", populate_by_name=True)

    host_id: str = Field(alias="hostId", min_length=1, max_length=64)


class HostRejectRequest(HostDecisionRequest):
    reason: str = Field(default="", max_length=1000)


class BlockRequest(_Request):
    blocked: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Credential-free view of an account."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    avatar: Optional[str] = None
    role: Role
    is_oauth_user: bool
    is_blocked: bool
    is_verified: bool
    verification_status: Optional[VerificationStatus] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        """Factory colocated with the output model so routes never map fields by hand."""
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            avatar=account.avatar,
            role=account.role,
            is_oauth_user=account.is_oauth_user,
            is_blocked=account.is_blocked,
            is_verified=account.is_verified,
            verification_status=account.verification_status,
            rejection_reason=account.rejection_reason,
            created_at=account.created_at,
            last_login=account.last_login,
        )


class SignupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    account: AccountResponse


class SigninResponse(BaseModel):
    """Tokens are withheld until the mailed code is verified."""

    model_config = ConfigDict(frozen=True)

    message: str
    email: str


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountResponse


class AccessTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class VerificationStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    host_id: str
    verification_status: VerificationStatus
    is_verified: bool
    rejection_reason: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "VerificationStatusResponse":
        return cls(
            host_id=account.id,
            verification_status=account.verification_status or VerificationStatus.PENDING,
            is_verified=account.is_verified,
            rejection_reason=account.rejection_reason,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
