"""
auth/verification.py -- Host trust state machine.

    pending  --approve-->  approved
    pending  --reject--->  rejected
    approved --reject--->  rejected
    rejected --approve-->  approved
    rejected --reapply-->  pending

There is no approved -> pending edge. Trust is only withdrawn
through an explicit reject, which records a reason.

Each transition is a compare-and-set on verification_status
(UserStore.update_if_status). If two admins act on the same host at once,
exactly one write lands and the other gets ConflictError instead of
silently overwriting it.

is_blocked is not touched here. Blocking is an independent kill-switch.
"""

from __future__ import annotations

import logging

from auth.errors import ConflictError, NotFoundError, ValidationError
from auth.models import Account, Role, VerificationStatus
from auth.store import UserStore

logger = logging.getLogger("hostgate.auth")

_APPROVE_FROM = (VerificationStatus.PENDING, VerificationStatus.REJECTED)
_REJECT_FROM = (VerificationStatus.PENDING, VerificationStatus.APPROVED)
_REAPPLY_FROM = (VerificationStatus.REJECTED,)


class VerificationWorkflow:
    def __init__(self, users: UserStore) -> None:
        self.users = users

    def _host(self, host_id: str) -> Account:
        account = self.users.get_by_id(host_id)
        if account is None or not account.is_host:
            raise NotFoundError("Host not found.")
        return account

    def _transition(self, host_id: str, action: str, allowed: tuple, **fields) -> Account:
        host = self._host(host_id)
        current = host.verification_status or VerificationStatus.PENDING
        if current not in allowed:
            raise ConflictError(f"Cannot {action} a host whose verification is {current.value}.")
        if not self.users.update_if_status(host_id, current, **fields):
            raise ConflictError("Verification status changed concurrently. Reload and retry.")
        logger.info("Host %s: %s -> %s", host_id, current.value, fields["verification_status"].value)
        return self.users.get_by_id(host_id)

    def approve(self, host_id: str) -> Account:
        return self._transition(
            host_id,
            "approve",
            _APPROVE_FROM,
            verification_status=VerificationStatus.APPROVED,
            is_verified=True,
            rejection_reason=None,
        )

    def reject(self, host_id: str, reason: str) -> Account:
        """Withdraw or refuse trust. reason is mandatory and shown to the host."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required.", field="reason")
        return self._transition(
            host_id,
            "reject",
            _REJECT_FROM,
            verification_status=VerificationStatus.REJECTED,
            is_verified=False,
            rejection_reason=reason,
        )

    def reapply(self, host_id: str) -> Account:
        return self._transition(
            host_id,
            "reapply for",
            _REAPPLY_FROM,
            verification_status=VerificationStatus.PENDING,
            is_verified=False,
            rejection_reason=None,
        )

    def status_of(self, host_id: str) -> Account:
        return self._host(host_id)

    def list_hosts(self, status: VerificationStatus | None = None) -> list[Account]:
        return self.users.list_accounts(role=Role.HOST, verification_status=status)
