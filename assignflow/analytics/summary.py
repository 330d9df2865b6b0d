"""Assignment analytics.

Summarizes recent ``assignment_outcomes`` for the admin dashboard:
totals, average response time, a per-job-role breakdown and a daily
trend.  Delegation tracking rows are excluded; they record a transfer
of authority, not an assignment.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from assignflow.core.constants import METHOD_DELEGATION
from assignflow.core.context import OrgContext
from assignflow.db.models import AssignmentOutcome, JobRole
from assignflow.routing.store import as_utc

logger = logging.getLogger(__name__)

UNSPECIFIED_JOB_ROLE = "Unspecified"


@dataclass
class JobRoleBreakdown:
    job_role_name: str
    assignment_count: int
    avg_score: float | None


@dataclass
class DailyTrend:
    date: date
    assignments: int
    avg_response_time: float | None


@dataclass
class AssignmentMetrics:
    total_assignments: int = 0
    avg_response_time_hours: float | None = None
    job_role_breakdown: list[JobRoleBreakdown] = field(default_factory=list)
    daily_trend: list[DailyTrend] = field(default_factory=list)


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def summarize_assignments(
    db_session: Session,
    ctx: OrgContext,
    now: datetime | None = None,
    window_days: int = 30,
    trend_days: int = 7,
) -> AssignmentMetrics:
    """Aggregate assignment outcomes of the last *window_days* days.

    The trend covers the last *trend_days* calendar days (UTC), oldest
    first, including days without assignments.
    """
    now = as_utc(now) or datetime.now(timezone.utc)
    since = now - timedelta(days=window_days)

    stmt = (
        select(AssignmentOutcome, JobRole.name)
        .outerjoin(JobRole, JobRole.id == AssignmentOutcome.job_role_id)
        .where(
            AssignmentOutcome.organization_id == ctx.organization_id,
            AssignmentOutcome.assignment_method != METHOD_DELEGATION,
            AssignmentOutcome.created_at >= since,
        )
        .order_by(AssignmentOutcome.created_at.asc())
    )
    rows = db_session.execute(stmt).all()

    response_times: list[float] = []
    by_role_count: dict[str, int] = defaultdict(int)
    by_role_scores: dict[str, list[float]] = defaultdict(list)
    by_day_count: dict[date, int] = defaultdict(int)
    by_day_times: dict[date, list[float]] = defaultdict(list)

    for outcome, job_role_name in rows:
        created = as_utc(outcome.created_at)
        if created > now:
            continue
        role_key = job_role_name or UNSPECIFIED_JOB_ROLE
        by_role_count[role_key] += 1
        if outcome.assignment_score is not None:
            by_role_scores[role_key].append(outcome.assignment_score)
        if outcome.response_time_hours is not None:
            response_times.append(outcome.response_time_hours)
            by_day_times[created.date()].append(outcome.response_time_hours)
        by_day_count[created.date()] += 1

    breakdown = [
        JobRoleBreakdown(
            job_role_name=name,
            assignment_count=count,
            avg_score=_mean(by_role_scores.get(name, [])),
        )
        for name, count in sorted(by_role_count.items(), key=lambda item: (-item[1], item[0]))
    ]

    today = now.date()
    trend = [
        DailyTrend(
            date=day,
            assignments=by_day_count.get(day, 0),
            avg_response_time=_mean(by_day_times.get(day, [])),
        )
        for day in (today - timedelta(days=offset) for offset in range(trend_days - 1, -1, -1))
    ]

    metrics = AssignmentMetrics(
        total_assignments=sum(by_role_count.values()),
        avg_response_time_hours=_mean(response_times),
        job_role_breakdown=breakdown,
        daily_trend=trend,
    )
    logger.debug(
        "Assignment summary org=%s window=%dd total=%d",
        ctx.organization_id, window_days, metrics.total_assignments,
    )
    return metrics
