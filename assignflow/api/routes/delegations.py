"""Approval delegation routes."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from assignflow.api.deps import get_delegation_ledger, get_org_context
from assignflow.core.context import OrgContext
from assignflow.routing.delegation import DelegationLedger

router = APIRouter(prefix="/delegations", tags=["delegations"])


class DelegationBody(BaseModel):
    original_approver_id: str
    delegate_approver_id: str
    request_id: str | None = None
    reason: str | None = None
    expires_at: datetime | None = None


def _serialize_delegation(record):
    return {
        "id": record.id,
        "request_id": record.request_id,
        "original_approver_id": record.original_approver_id,
        "delegate_approver_id": record.delegate_approver_id,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "expires_at": record.expires_at.isoformat() if record.expires_at else None,
        "active": record.active,
    }


@router.post("", status_code=201, summary="Delegate approval authority")
def create_delegation(
    body: DelegationBody,
    ctx: OrgContext = Depends(get_org_context),
    ledger: DelegationLedger = Depends(get_delegation_ledger),
):
    created = ledger.create_delegation(
        ctx,
        body.request_id,
        body.original_approver_id,
        body.delegate_approver_id,
        reason=body.reason,
        expires_at=body.expires_at,
    )
    if not created:
        raise HTTPException(status_code=400, detail="Delegation could not be created")
    return {"created": True}


@router.get("", summary="Active delegations granted by a user")
def list_delegations(
    user_id: str,
    ctx: OrgContext = Depends(get_org_context),
    ledger: DelegationLedger = Depends(get_delegation_ledger),
):
    # Reason text is never returned.
    return [_serialize_delegation(d) for d in ledger.get_active_delegations(ctx, user_id)]


@router.post("/expire", summary="Deactivate delegations past their expiry")
def expire_delegations(
    ctx: OrgContext = Depends(get_org_context),
    ledger: DelegationLedger = Depends(get_delegation_ledger),
):
    return {"expired": ledger.expire_stale_delegations(ctx)}


@router.post("/{delegation_id}/revoke", summary="Revoke a delegation")
def revoke_delegation(
    delegation_id: str,
    ctx: OrgContext = Depends(get_org_context),
    ledger: DelegationLedger = Depends(get_delegation_ledger),
):
    if not ledger.revoke_delegation(ctx, delegation_id):
        raise HTTPException(status_code=404, detail=f"Active delegation {delegation_id} not found")
    return {"revoked": True}
