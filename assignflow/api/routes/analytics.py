"""GET /analytics/assignments: assignment metrics for the admin dashboard."""
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from assignflow.analytics.summary import summarize_assignments
from assignflow.api.deps import get_db, get_org_context
from assignflow.core.context import OrgContext
from assignflow.core.settings import get_settings

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/assignments", summary="Assignment totals, job role breakdown and daily trend")
def assignment_metrics(
    window_days: int | None = Query(default=None, ge=1, le=365),
    trend_days: int = Query(default=7, ge=1, le=90),
    ctx: OrgContext = Depends(get_org_context),
    db: Session = Depends(get_db),
):
    metrics = summarize_assignments(
        db,
        ctx,
        window_days=window_days or get_settings().analytics_window_days,
        trend_days=trend_days,
    )
    payload = asdict(metrics)
    for point in payload["daily_trend"]:
        point["date"] = point["date"].isoformat()
    return payload
