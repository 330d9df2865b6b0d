"""Assignment rule administration routes."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from assignflow.admin.rules import RuleManager
from assignflow.api.deps import get_org_context, get_rule_manager
from assignflow.core.context import OrgContext

router = APIRouter(tags=["rules"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class RuleCreateBody(BaseModel):
    name: str
    rule_type: str
    conditions: dict[str, Any] | None = None
    strategy: str = "first_available"
    escalation_policy: dict[str, Any] | None = None
    active: bool = True
    priority: int | None = None


class RuleUpdateBody(BaseModel):
    name: str | None = None
    rule_type: str | None = None
    conditions: dict[str, Any] | None = None
    strategy: str | None = None
    escalation_policy: dict[str, Any] | None = None
    active: bool | None = None
    priority: int | None = None


class ReorderBody(BaseModel):
    rule_ids: list[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _serialize_rule(rule):
    return {
        "id": rule.id,
        "request_type_id": rule.request_type_id,
        "name": rule.name,
        "rule_type": rule.rule_type,
        "conditions": rule.conditions or {},
        "strategy": rule.strategy,
        "escalation_policy": rule.escalation_policy,
        "active": rule.active,
        "priority": rule.priority,
        "created_by": rule.created_by,
        "created_at": rule.created_at.isoformat() if rule.created_at else None,
    }


def _raise_for(exc: Exception):
    if isinstance(exc, KeyError):
        raise HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "not found")
    if isinstance(exc, PermissionError):
        raise HTTPException(status_code=403, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/request-types/{request_type_id}/rules", summary="List rules in evaluation order")
def list_rules(
    request_type_id: str,
    active_only: bool = False,
    ctx: OrgContext = Depends(get_org_context),
    manager: RuleManager = Depends(get_rule_manager),
):
    return [_serialize_rule(r) for r in manager.list_rules(ctx, request_type_id, active_only=active_only)]


@router.post("/request-types/{request_type_id}/rules", status_code=201, summary="Create a rule")
def create_rule(
    request_type_id: str,
    body: RuleCreateBody,
    ctx: OrgContext = Depends(get_org_context),
    manager: RuleManager = Depends(get_rule_manager),
):
    try:
        rule = manager.create_rule(ctx, request_type_id, **body.model_dump())
    except (KeyError, PermissionError, ValueError) as exc:
        _raise_for(exc)
    return _serialize_rule(rule)


@router.post("/request-types/{request_type_id}/rules/reorder", summary="Rewrite rule priorities")
def reorder_rules(
    request_type_id: str,
    body: ReorderBody,
    ctx: OrgContext = Depends(get_org_context),
    manager: RuleManager = Depends(get_rule_manager),
):
    try:
        rules = manager.reorder_rules(ctx, request_type_id, body.rule_ids)
    except ValueError as exc:
        _raise_for(exc)
    return [_serialize_rule(r) for r in rules]


@router.patch("/rules/{rule_id}", summary="Update a rule")
def update_rule(
    rule_id: str,
    body: RuleUpdateBody,
    ctx: OrgContext = Depends(get_org_context),
    manager: RuleManager = Depends(get_rule_manager),
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        rule = manager.update_rule(ctx, rule_id, **changes)
    except (KeyError, PermissionError, ValueError) as exc:
        _raise_for(exc)
    return _serialize_rule(rule)


@router.delete("/rules/{rule_id}", status_code=204, summary="Delete a rule")
def delete_rule(
    rule_id: str,
    ctx: OrgContext = Depends(get_org_context),
    manager: RuleManager = Depends(get_rule_manager),
):
    try:
        manager.delete_rule(ctx, rule_id)
    except (KeyError, PermissionError) as exc:
        _raise_for(exc)
