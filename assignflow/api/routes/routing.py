"""POST /routing/preview: evaluate rules for a request without recording an assignment."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from assignflow.api.deps import get_assignment_service, get_org_context
from assignflow.core.context import OrgContext
from assignflow.routing.service import AssignmentService

router = APIRouter(prefix="/routing", tags=["routing"])


class PreviewBody(BaseModel):
    request_type_id: str
    request_id: str | None = None
    request_data: dict[str, Any] = Field(default_factory=dict)


@router.post("/preview", summary="Preview who a request would be routed to")
def preview_routing(
    body: PreviewBody,
    ctx: OrgContext = Depends(get_org_context),
    service: AssignmentService = Depends(get_assignment_service),
):
    result = service.assign_request(
        ctx,
        body.request_id,
        body.request_type_id,
        body.request_data,
        record=False,
    )
    return {
        "request_type_id": body.request_type_id,
        "method": result.method,
        "rule_id": result.rule_id,
        "rule_name": result.rule_name,
        "strategy": result.strategy,
        "approver_ids": result.approver_ids,
        "delegated_from": result.delegated_from,
    }
