"""
api/routes/v1/host.py -- Host self-service.

Routes:
  GET  /api/v1/host/verification          -- own verification status and rejection reason
  POST /api/v1/host/verification/reapply  -- rejected -> pending
  GET  /api/v1/host/profile               -- approved hosts only (require_approved_host)

/host/profile is the reference consumer of require_approved_host: any route
that lets a host act on the marketplace depends on the same gate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AccountResponse, VerificationStatusResponse
from auth.dependencies import require_approved_host, require_host
from auth.models import Principal

# Auth policy:
# - GET  /host/verification, POST /host/verification/reapply: require_host
# - GET  /host/profile: require_approved_host
router = APIRouter()


@router.get("/host/verification", response_model=VerificationStatusResponse)
def verification_status(request: Request, host: Principal = Depends(require_host)) -> VerificationStatusResponse:
    account = request.app.state.auth.workflow.status_of(host.id)
    return VerificationStatusResponse.from_account(account)


@router.post("/host/verification/reapply", response_model=VerificationStatusResponse)
def reapply(request: Request, host: Principal = Depends(require_host)) -> VerificationStatusResponse:
    account = request.app.state.auth.workflow.reapply(host.id)
    return VerificationStatusResponse.from_account(account)


@router.get("/host/profile", response_model=AccountResponse)
def profile(request: Request, host: Principal = Depends(require_approved_host)) -> AccountResponse:
    return AccountResponse.from_account(request.app.state.auth.users.get_by_id(host.id))
