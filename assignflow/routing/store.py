"""Query boundary between the routing engine and the relational store.

Every read is scoped to ``ctx.organization_id`` and converts ORM rows
into the typed records of ``routing.types``.  Rows whose shape does not
fit are skipped and logged rather than handed to business logic, and
driver errors surface as ``RoutingStoreError`` so callers can degrade.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError
from assignflow.db import models
from assignflow.routing.types import (
    ApproverWorkload,
    AssignmentRule,
    CandidateUser,
    DelegationRecord,
    JobRoleAssignment,
    RequestTypeConfig,
)

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _str_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item is not None)


@contextmanager
def _reading(what: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise RoutingStoreError(f"failed to read {what}") from exc


def rule_from_row(row: models.AssignmentRule) -> AssignmentRule | None:
    """Build an ``AssignmentRule`` record, or ``None`` if the row is malformed."""
    conditions = row.conditions if row.conditions is not None else {}
    if not isinstance(conditions, dict):
        logger.warning("Skipping rule %s: conditions is not an object", row.id)
        return None
    if not isinstance(row.rule_type, str) or not row.rule_type:
        logger.warning("Skipping rule %s: missing rule_type", row.id)
        return None
    escalation = row.escalation_policy if isinstance(row.escalation_policy, dict) else None
    return AssignmentRule(
        id=row.id,
        organization_id=row.organization_id,
        request_type_id=row.request_type_id,
        name=row.name,
        rule_type=row.rule_type,
        conditions=conditions,
        strategy=row.strategy or "first_available",
        escalation_policy=escalation,
        active=bool(row.active),
        priority=int(row.priority or 0),
        created_at=as_utc(row.created_at),
    )


def delegation_from_row(row: models.Delegation) -> DelegationRecord:
    return DelegationRecord(
        id=row.id,
        organization_id=row.organization_id,
        original_approver_id=row.original_approver_id,
        delegate_approver_id=row.delegate_approver_id,
        request_id=row.request_id,
        reason=row.reason,
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        active=bool(row.active),
    )


class RoutingStore:
    """Organization-scoped reads used by the routing engine."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    # -- rules --------------------------------------------------------------

    def fetch_active_rules(self, ctx: OrgContext, request_type_id: str) -> list[AssignmentRule]:
        """Return active rules for *request_type_id* in evaluation order."""
        stmt = (
            select(models.AssignmentRule)
            .where(
                models.AssignmentRule.organization_id == ctx.organization_id,
                models.AssignmentRule.request_type_id == request_type_id,
                models.AssignmentRule.active.is_(True),
            )
            .order_by(
                models.AssignmentRule.priority.asc(),
                models.AssignmentRule.created_at.asc(),
                models.AssignmentRule.id.asc(),
            )
        )
        with _reading("assignment rules"):
            rows = self.db.execute(stmt).scalars().all()
        rules = [rule for rule in (rule_from_row(row) for row in rows) if rule is not None]
        return rules

    def fetch_request_type(self, ctx: OrgContext, request_type_id: str) -> RequestTypeConfig | None:
        with _reading("request type"):
            row = self.db.get(models.RequestType, request_type_id)
        if row is None or row.organization_id != ctx.organization_id:
            return None
        return RequestTypeConfig(
            id=row.id,
            organization_id=row.organization_id,
            name=row.name,
            default_job_roles=_str_tuple(row.default_job_roles),
            selected_user_ids=_str_tuple(row.selected_user_ids),
            assignment_strategy=row.assignment_strategy or "first_available",
            expertise_tags=_str_tuple(row.expertise_tags),
            geographic_scope=row.geographic_scope,
            workload_balancing_enabled=bool(row.workload_balancing_enabled),
        )

    # -- directory ----------------------------------------------------------

    def load_candidate_pool(self, ctx: OrgContext) -> list[CandidateUser]:
        """Return every active user of the organization as a ``CandidateUser``."""
        org = ctx.organization_id
        with _reading("user directory"):
            users = self.db.execute(
                select(models.OrgUser)
                .where(models.OrgUser.organization_id == org, models.OrgUser.is_active.is_(True))
                .order_by(models.OrgUser.created_at.asc(), models.OrgUser.id.asc())
            ).scalars().all()
            role_rows = self.db.execute(
                select(models.UserJobRole).where(models.UserJobRole.organization_id == org)
            ).scalars().all()
            team_rows = self.db.execute(
                select(models.TeamMembership.user_id, models.TeamMembership.team_id)
                .join(models.Team, models.Team.id == models.TeamMembership.team_id)
                .where(models.Team.organization_id == org)
            ).all()

        job_roles: dict[str, set[str]] = defaultdict(set)
        primary: dict[str, str] = {}
        for row in role_rows:
            job_roles[row.user_id].add(row.job_role_id)
            if row.is_primary:
                primary.setdefault(row.user_id, row.job_role_id)

        teams: dict[str, set[str]] = defaultdict(set)
        for user_id, team_id in team_rows:
            teams[user_id].add(team_id)

        return [
            CandidateUser(
                id=user.id,
                organization_id=user.organization_id,
                role=user.role,
                job_roles=frozenset(job_roles.get(user.id, ())),
                primary_job_role=primary.get(user.id),
                expertise_tags=frozenset(_str_tuple(user.expertise_tags)),
                location=user.location,
                team_ids=frozenset(teams.get(user.id, ())),
                name=user.name,
                email=user.email,
            )
            for user in users
        ]

    def fetch_job_role_ids(self, ctx: OrgContext, names_or_ids: Iterable[str]) -> set[str]:
        """Resolve job role names (or ids) to active job role ids."""
        keys = [key for key in names_or_ids if key]
        if not keys:
            return set()
        stmt = select(models.JobRole.id).where(
            models.JobRole.organization_id == ctx.organization_id,
            models.JobRole.is_active.is_(True),
            or_(models.JobRole.name.in_(keys), models.JobRole.id.in_(keys)),
        )
        with _reading("job roles"):
            return set(self.db.execute(stmt).scalars().all())

    def fetch_job_role_assignments(
        self, ctx: OrgContext, job_role_ids: Iterable[str]
    ) -> list[JobRoleAssignment]:
        ids = [jr for jr in job_role_ids if jr]
        if not ids:
            return []
        stmt = (
            select(models.UserJobRole)
            .where(
                models.UserJobRole.organization_id == ctx.organization_id,
                models.UserJobRole.job_role_id.in_(ids),
            )
            .order_by(models.UserJobRole.created_at.asc(), models.UserJobRole.id.asc())
        )
        with _reading("job role assignments"):
            rows = self.db.execute(stmt).scalars().all()
        return [
            JobRoleAssignment(user_id=row.user_id, job_role_id=row.job_role_id, is_primary=bool(row.is_primary))
            for row in rows
        ]

    def fetch_team_member_ids(self, ctx: OrgContext, team_ids: Iterable[str]) -> set[str]:
        ids = [tid for tid in team_ids if tid]
        if not ids:
            return set()
        stmt = (
            select(models.TeamMembership.user_id)
            .join(models.Team, models.Team.id == models.TeamMembership.team_id)
            .where(
                models.Team.organization_id == ctx.organization_id,
                models.Team.id.in_(ids),
                models.Team.is_active.is_(True),
            )
        )
        with _reading("team memberships"):
            return set(self.db.execute(stmt).scalars().all())

    # -- workload -----------------------------------------------------------

    def fetch_workloads(self, ctx: OrgContext, approver_ids: Iterable[str]) -> list[ApproverWorkload]:
        ids = list(dict.fromkeys(approver_ids))
        if not ids:
            return []
        stmt = select(models.ApproverWorkload).where(
            models.ApproverWorkload.organization_id == ctx.organization_id,
            models.ApproverWorkload.approver_id.in_(ids),
        )
        with _reading("approver workloads"):
            rows = self.db.execute(stmt).scalars().all()
        return [
            ApproverWorkload(
                approver_id=row.approver_id,
                active_request_count=max(int(row.active_request_count or 0), 0),
                pending_count=max(int(row.pending_count or 0), 0),
                avg_pending_hours=row.avg_pending_hours,
            )
            for row in rows
        ]

    # -- delegations --------------------------------------------------------

    def fetch_delegations(
        self,
        ctx: OrgContext,
        original_approver_id: str,
        *,
        active_only: bool = True,
    ) -> list[DelegationRecord]:
        stmt = select(models.Delegation).where(
            models.Delegation.organization_id == ctx.organization_id,
            models.Delegation.original_approver_id == original_approver_id,
        )
        if active_only:
            stmt = stmt.where(models.Delegation.active.is_(True))
        stmt = stmt.order_by(models.Delegation.created_at.desc(), models.Delegation.id.asc())
        with _reading("delegations"):
            rows = self.db.execute(stmt).scalars().all()
        return [delegation_from_row(row) for row in rows]
