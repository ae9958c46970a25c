"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as `Authorization: Bearer <token>`. There are no
cookies and no API keys in this service.

get_current_principal() verifies the token and then re-reads the account:
a token signed before the account was blocked or deleted stops working at
once instead of living out its remaining minutes.

require_admin() / require_host() add a role gate. require_approved_host()
additionally demands verification_status == approved; it is the gate every
host-privileged route uses.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.errors import InvalidTokenError
from auth.models import Account, Principal, Role, VerificationStatus


def _unauthorized(message: str = "Authentication required.") -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_principal(request: Request) -> Principal:
    """Require a valid access token for a live, unblocked account."""
    token = _bearer_token(request)
    if not token:
        raise _unauthorized()
    components = request.app.state.auth
    try:
        claims = components.tokens.verify_access_token(token)
    except InvalidTokenError:
        raise _unauthorized("Invalid or expired access token.") from None
    account = components.users.get_by_id(claims["sub"])
    if account is None:
        raise _unauthorized("Invalid or expired access token.")
    if account.is_blocked:
        raise _unauthorized("This account has been blocked. Contact support.")
    # Role comes from the store so a changed role takes effect immediately.
    return Principal(id=account.id, email=account.email, role=account.role)


def get_current_account(request: Request, principal: Principal = Depends(get_current_principal)) -> Account:
    return request.app.state.auth.users.get_by_id(principal.id)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != Role.ADMIN:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return principal


def require_host(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != Role.HOST:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Host access required."},
        )
    return principal


def require_approved_host(request: Request, principal: Principal = Depends(require_host)) -> Principal:
    account = request.app.state.auth.users.get_by_id(principal.id)
    if account is None or account.verification_status != VerificationStatus.APPROVED:
        raise HTTPException(
            status_code=403,
            detail={"code": "host_not_approved", "message": "Host verification has not been approved."},
        )
    return principal
