"""Delegation ledger.

An approver may hand their authority over one request (or, with
``request_id=None``, every request) to another approver until an
optional expiry.  Delegation only overrides *who acts*; it never feeds
back into rule evaluation.

Writes here are audit-adjacent: a failed insert is logged and reported
as ``False``, never raised into the routing decision that triggered it.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assignflow.audit.audit_log import record_event
from assignflow.audit.events import (
    EVENT_DELEGATION_CREATED,
    EVENT_DELEGATION_EXPIRED,
    EVENT_DELEGATION_REVOKED,
)
from assignflow.core.constants import METHOD_DELEGATION
from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError
from assignflow.db.models import AssignmentOutcome, Delegation
from assignflow.routing.store import RoutingStore, as_utc
from assignflow.routing.types import DelegationRecord

logger = logging.getLogger(__name__)


class DelegationLedger:
    """Create, look up and retire approval delegations."""

    def __init__(self, db_session: Session, store: RoutingStore | None = None) -> None:
        self.db = db_session
        self.store = store or RoutingStore(db_session)

    # -- create -------------------------------------------------------------

    def create_delegation(
        self,
        ctx: OrgContext,
        request_id: str | None,
        original_approver_id: str,
        delegate_approver_id: str,
        reason: str | None = None,
        expires_at: datetime | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Insert one active delegation plus a tracking outcome row.

        Returns ``False`` (never raises) when the delegation is invalid
        or cannot be persisted.
        """
        current = as_utc(now) or datetime.now(timezone.utc)
        expires = as_utc(expires_at)

        if not original_approver_id or not delegate_approver_id:
            logger.warning("Delegation rejected: approver ids are required (org=%s)", ctx.organization_id)
            return False
        if original_approver_id == delegate_approver_id:
            logger.warning("Delegation rejected: approver %s delegating to self", original_approver_id)
            return False
        if expires is not None and expires <= current:
            logger.warning("Delegation rejected: expiry is not in the future (approver=%s)", original_approver_id)
            return False

        try:
            with self.db.begin_nested():
                delegation = Delegation(
                    organization_id=ctx.organization_id,
                    request_id=request_id,
                    original_approver_id=original_approver_id,
                    delegate_approver_id=delegate_approver_id,
                    reason=reason,
                    created_at=current,
                    expires_at=expires,
                    active=True,
                )
                self.db.add(delegation)
                self.db.add(
                    AssignmentOutcome(
                        organization_id=ctx.organization_id,
                        request_id=request_id,
                        approver_id=original_approver_id,
                        assignment_method=METHOD_DELEGATION,
                        created_at=current,
                    )
                )
                self.db.flush()
                record_event(
                    self.db,
                    ctx.organization_id,
                    EVENT_DELEGATION_CREATED,
                    actor=ctx.actor,
                    target_id=delegation.id,
                    detail={
                        "request_id": request_id,
                        "original_approver_id": original_approver_id,
                        "delegate_approver_id": delegate_approver_id,
                    },
                )
        except (SQLAlchemyError, ValueError):
            logger.error(
                "Failed to record delegation from %s to %s (org=%s)",
                original_approver_id, delegate_approver_id, ctx.organization_id, exc_info=True,
            )
            return False

        logger.info(
            "Delegation created: %s -> %s request=%s",
            original_approver_id, delegate_approver_id, request_id or "standing",
        )
        return True

    # -- read ---------------------------------------------------------------

    def get_active_delegations(self, ctx: OrgContext, user_id: str) -> list[DelegationRecord]:
        """Return active delegations granted by *user_id*.

        Expiry is not applied here; an expired row that is still flagged
        active is returned as-is until ``expire_stale_delegations`` runs.
        """
        try:
            return self.store.fetch_delegations(ctx, user_id, active_only=True)
        except RoutingStoreError:
            logger.warning("Delegation lookup failed for %s (org=%s)", user_id, ctx.organization_id, exc_info=True)
            return []

    def resolve_acting_approver(
        self,
        ctx: OrgContext,
        request_id: str | None,
        approver_id: str,
        now: datetime | None = None,
    ) -> str:
        """Return who should act for *approver_id* on *request_id*.

        A live request-specific delegation wins over a standing one;
        the most recent of each kind wins.  Delegations are followed
        one hop only.
        """
        current = as_utc(now) or datetime.now(timezone.utc)
        live = [d for d in self.get_active_delegations(ctx, approver_id) if not d.is_expired(current)]
        if request_id is not None:
            for delegation in live:
                if delegation.request_id == request_id:
                    return delegation.delegate_approver_id
        for delegation in live:
            if delegation.request_id is None:
                return delegation.delegate_approver_id
        return approver_id

    # -- retire -------------------------------------------------------------

    def revoke_delegation(self, ctx: OrgContext, delegation_id: str, actor: str | None = None) -> bool:
        """Flag one delegation inactive.  Returns ``False`` if not revocable."""
        actor = actor or ctx.actor
        try:
            with self.db.begin_nested():
                row = self.db.get(Delegation, delegation_id)
                if row is None or row.organization_id != ctx.organization_id or not row.active:
                    return False
                row.active = False
                row.revoked_at = datetime.now(timezone.utc)
                row.revoked_by = actor
                self.db.flush()
                record_event(
                    self.db,
                    ctx.organization_id,
                    EVENT_DELEGATION_REVOKED,
                    actor=actor,
                    target_id=row.id,
                )
        except (SQLAlchemyError, ValueError):
            logger.error("Failed to revoke delegation %s", delegation_id, exc_info=True)
            return False
        logger.info("Delegation revoked: %s by %s", delegation_id, actor)
        return True

    def expire_stale_delegations(self, ctx: OrgContext, now: datetime | None = None) -> int:
        """Deactivate every active delegation whose expiry has passed.

        This is the reconciliation pass for the expiry transition; it is
        run on demand (admin endpoint or scheduler), not in the
        background.  Returns the number of rows expired.
        """
        current = as_utc(now) or datetime.now(timezone.utc)
        stmt = select(Delegation).where(
            Delegation.organization_id == ctx.organization_id,
            Delegation.active.is_(True),
            Delegation.expires_at.is_not(None),
        )
        expired = 0
        try:
            with self.db.begin_nested():
                for row in self.db.execute(stmt).scalars().all():
                    if as_utc(row.expires_at) > current:
                        continue
                    row.active = False
                    row.revoked_at = current
                    row.revoked_by = "system:expiry"
                    record_event(
                        self.db,
                        ctx.organization_id,
                        EVENT_DELEGATION_EXPIRED,
                        actor="system",
                        target_id=row.id,
                    )
                    expired += 1
                self.db.flush()
        except SQLAlchemyError:
            logger.error("Delegation expiry pass failed (org=%s)", ctx.organization_id, exc_info=True)
            return 0
        if expired:
            logger.info("Expired %d delegation(s) in org=%s", expired, ctx.organization_id)
        return expired
