"""
api/routes/v1/admin.py -- Host verification review and account blocking (admin only).

Routes:
  GET   /api/v1/admin/hosts?status=pending  -- review queue, oldest first
  POST  /api/v1/admin/hosts/approve         -- {hostId}
  POST  /api/v1/admin/hosts/reject          -- {hostId, reason}; reason required
  POST  /api/v1/admin/hosts/reapply         -- {hostId}; move a rejected host back to pending
  PATCH /api/v1/admin/users/{id}/block      -- {blocked}

Invalid transitions come back as 409 and a missing reason as 400, both from
the AuthError handler in api/main.py.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import AccountResponse, BlockRequest, HostDecisionRequest, HostRejectRequest
from auth.dependencies import require_admin
from auth.models import Principal, VerificationStatus
from auth.verification import VerificationWorkflow

logger = logging.getLogger("hostgate.api")

# Auth policy: every route in this module requires admin (require_admin).
router = APIRouter()


def _workflow(request: Request) -> VerificationWorkflow:
    return request.app.state.auth.workflow


@router.get("/admin/hosts", response_model=list[AccountResponse])
def list_hosts(
    request: Request,
    status: Optional[VerificationStatus] = None,
    admin: Principal = Depends(require_admin),
) -> list[AccountResponse]:
    return [AccountResponse.from_account(a) for a in _workflow(request).list_hosts(status)]


@router.post("/admin/hosts/approve", response_model=AccountResponse)
def approve_host(
    request: Request,
    body: HostDecisionRequest,
    admin: Principal = Depends(require_admin),
) -> AccountResponse:
    host = _workflow(request).approve(body.host_id)
    logger.info("Admin %s approved host %s", admin.id, host.id)
    return AccountResponse.from_account(host)


@router.post("/admin/hosts/reject", response_model=AccountResponse)
def reject_host(
    request: Request,
    body: HostRejectRequest,
    admin: Principal = Depends(require_admin),
) -> AccountResponse:
    host = _workflow(request).reject(body.host_id, body.reason)
    logger.info("Admin %s rejected host %s", admin.id, host.id)
    return AccountResponse.from_account(host)


@router.post("/admin/hosts/reapply", response_model=AccountResponse)
def reapply_host(
    request: Request,
    body: HostDecisionRequest,
    admin: Principal = Depends(require_admin),
) -> AccountResponse:
    return AccountResponse.from_account(_workflow(request).reapply(body.host_id))


@router.patch("/admin/users/{account_id}/block", response_model=AccountResponse)
def set_blocked(
    request: Request,
    account_id: str,
    body: BlockRequest,
    admin: Principal = Depends(require_admin),
) -> AccountResponse:
    """Block or unblock an account. Admins cannot block themselves."""
    if account_id == admin.id and body.blocked:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_block", "message": "You cannot block your own account."},
        )
    account = request.app.state.auth.orchestrator.set_blocked(account_id, body.blocked)
    return AccountResponse.from_account(account)
