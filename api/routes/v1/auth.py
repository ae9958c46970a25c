"""
api/routes/v1/auth.py -- Sign-up, OTP sign-in, tokens, OAuth and password recovery.

Routes:
  POST /api/v1/auth/signup           -- create account, mail first code; 201, no tokens
  POST /api/v1/auth/signin           -- check password, mail code; returns email only
  POST /api/v1/auth/verify-otp       -- consume code; returns access + refresh tokens
  POST /api/v1/auth/resend-otp       -- replace outstanding code, mail it
  POST /api/v1/auth/refresh          -- refresh token -> new access token
  POST /api/v1/auth/logout           -- revoke the presented refresh token
  POST /api/v1/auth/oauth            -- provider ID token -> tokens (no code step)
  POST /api/v1/auth/forgot-password  -- mail a reset link
  POST /api/v1/auth/reset-password   -- consume reset code, set password, revoke sessions
  GET  /api/v1/auth/me               -- current account (requires auth)

Every optional `role` field scopes the flow: the host console sends
role="host" so a guest account cannot sign in there.

Security:
  Credential and code routes are rate-limited per IP by slowapi here and per
  account inside the orchestrator.
  Cache-Control: no-store on every response that can carry a token.
  Domain errors propagate to the AuthError handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import AUTH_LIMIT, limiter
from api.models import (
    AccessTokenResponse,
    AccountResponse,
    ForgotPasswordRequest,
    LogoutRequest,
    MessageResponse,
    OAuthRequest,
    OtpVerifyRequest,
    RefreshRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    SigninRequest,
    SigninResponse,
    SignupRequest,
    SignupResponse,
    TokenResponse,
)
from auth.dependencies import get_current_account
from auth.models import Account, AuthResult
from auth.orchestrator import AuthOrchestrator

# Auth policy:
# - every POST route below is public -- these are the routes that produce credentials
# - GET /api/v1/auth/me: requires auth (get_current_account)
router = APIRouter()


def _orchestrator(request: Request) -> AuthOrchestrator:
    return request.app.state.auth.orchestrator


def _token_response(result: AuthResult, response: Response) -> TokenResponse:
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
        account=AccountResponse.from_account(result.account),
    )


# ---------------------------------------------------------------------------
# Sign-up and OTP sign-in
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/signup", response_model=SignupResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> SignupResponse:
    """Create an account and mail its first sign-in code. No tokens are issued."""
    account = _orchestrator(request).signup(body.name, body.email, body.password, role=body.role)
    return SignupResponse(
        message="Account created. Check your email for the verification code.",
        account=AccountResponse.from_account(account),
    )


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/signin", response_model=SigninResponse)
def signin(request: Request, body: SigninRequest) -> SigninResponse:
    email = _orchestrator(request).signin(body.email, body.password, role=body.role)
    return SigninResponse(message="Verification code sent.", email=email)


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/verify-otp", response_model=TokenResponse)
def verify_otp(request: Request, response: Response, body: OtpVerifyRequest) -> TokenResponse:
    result = _orchestrator(request).verify_otp(body.email, body.otp, role=body.role)
    return _token_response(result, response)


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/resend-otp", response_model=SigninResponse)
def resend_otp(request: Request, body: ResendOtpRequest) -> SigninResponse:
    email = _orchestrator(request).resend_otp(body.email, role=body.role)
    return SigninResponse(message="A new verification code has been sent.", email=email)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/refresh", response_model=AccessTokenResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> AccessTokenResponse:
    orchestrator = _orchestrator(request)
    access_token = orchestrator.refresh_access_token(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return AccessTokenResponse(access_token=access_token, expires_in=orchestrator.tokens.access_ttl)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: LogoutRequest) -> MessageResponse:
    """Always 200: logging out with an unknown or stale token is not an error."""
    _orchestrator(request).logout(body.refresh_token)
    return MessageResponse(message="Logged out.")


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/oauth", response_model=TokenResponse)
def oauth(request: Request, response: Response, body: OAuthRequest) -> TokenResponse:
    result = _orchestrator(request).oauth_signin(
        body.name,
        body.email,
        body.access_token,
        avatar=body.avatar,
        role=body.role,
    )
    return _token_response(result, response)


# ---------------------------------------------------------------------------
# Password recovery
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    _orchestrator(request).forgot_password(body.email, role=body.role)
    return MessageResponse(message="Password reset instructions have been sent.")


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    _orchestrator(request).reset_password(body.email, body.otp, body.password, role=body.role)
    return MessageResponse(message="Password updated. Sign in again on every device.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=AccountResponse)
def me(account: Account = Depends(get_current_account)) -> AccountResponse:
    return AccountResponse.from_account(account)
