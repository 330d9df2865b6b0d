"""Typed routing records.

The routing engine works on these immutable records only.  They are
built from ORM rows in ``routing.store``; nothing downstream touches
the raw row shapes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from assignflow.core.constants import ACTIVE_WEIGHT, PENDING_WEIGHT


@dataclass(frozen=True, slots=True)
class CandidateUser:
    id: str
    organization_id: str
    role: str
    job_roles: frozenset[str] = frozenset()
    primary_job_role: str | None = None
    expertise_tags: frozenset[str] = frozenset()
    location: str | None = None
    team_ids: frozenset[str] = frozenset()
    name: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class ApproverWorkload:
    approver_id: str
    active_request_count: int = 0
    pending_count: int = 0
    avg_pending_hours: float | None = None

    @property
    def score(self) -> int:
        """Workload score: pending*2 + active; lower is less loaded."""
        return workload_score(self.pending_count, self.active_request_count)


def workload_score(pending_count: int, active_request_count: int) -> int:
    return pending_count * PENDING_WEIGHT + active_request_count * ACTIVE_WEIGHT


@dataclass(frozen=True, slots=True)
class AssignmentRule:
    id: str
    organization_id: str
    request_type_id: str
    name: str
    rule_type: str
    conditions: dict[str, Any] = field(default_factory=dict)
    strategy: str = "first_available"
    escalation_policy: dict[str, Any] | None = None
    active: bool = True
    priority: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class RequestTypeConfig:
    id: str
    organization_id: str
    name: str
    default_job_roles: tuple[str, ...] = ()
    selected_user_ids: tuple[str, ...] = ()
    assignment_strategy: str = "first_available"
    expertise_tags: tuple[str, ...] = ()
    geographic_scope: str | None = None
    workload_balancing_enabled: bool = False

    @property
    def geographic_preference(self) -> bool:
        return self.geographic_scope == "local"


@dataclass(frozen=True, slots=True)
class JobRoleAssignment:
    user_id: str
    job_role_id: str
    is_primary: bool = False


@dataclass(frozen=True, slots=True)
class DelegationRecord:
    id: str
    organization_id: str
    original_approver_id: str
    delegate_approver_id: str
    request_id: str | None = None
    reason: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    active: bool = True

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(slots=True)
class RoutingDecision:
    """Outcome of rule evaluation for one request, before delegation."""

    candidates: list[CandidateUser]
    method: str
    rule_id: str | None = None
    rule_name: str | None = None
    strategy: str | None = None
    # user id -> job role the assignment is attributed to
    job_roles: dict[str, str] = field(default_factory=dict)
    rules_evaluated: int = 0
