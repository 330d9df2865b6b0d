from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
    text as sql_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assignflow.db.base import Base


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Directory tables (owned by the identity subsystem, read-only here)
# ---------------------------------------------------------------------------


class OrgUser(Base):
    __tablename__ = "org_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    email: Mapped[str | None] = mapped_column(String(512), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="user", server_default=sql_text("'user'"))
    location: Mapped[str | None] = mapped_column(String(256), nullable=True)
    expertise_tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    job_roles: Mapped[list[UserJobRole]] = relationship(back_populates="user")
    memberships: Mapped[list[TeamMembership]] = relationship(back_populates="user")


class JobRole(Base):
    __tablename__ = "job_roles"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_job_roles_org_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    holders: Mapped[list[UserJobRole]] = relationship(back_populates="job_role")


class UserJobRole(Base):
    __tablename__ = "user_job_roles"
    __table_args__ = (UniqueConstraint("user_id", "job_role_id", name="uq_user_job_roles_user_role"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("org_users.id", ondelete="CASCADE"), nullable=False)
    job_role_id: Mapped[str] = mapped_column(ForeignKey("job_roles.id", ondelete="CASCADE"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=sql_text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    user: Mapped[OrgUser] = relationship(back_populates="job_roles")
    job_role: Mapped[JobRole] = relationship(back_populates="holders")


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    memberships: Mapped[list[TeamMembership]] = relationship(back_populates="team")


class TeamMembership(Base):
    __tablename__ = "team_memberships"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_memberships_team_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("org_users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="member", server_default=sql_text("'member'"))
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    team: Mapped[Team] = relationship(back_populates="memberships")
    user: Mapped[OrgUser] = relationship(back_populates="memberships")


# ---------------------------------------------------------------------------
# Routing configuration (owned by organization admins)
# ---------------------------------------------------------------------------


class RequestType(Base):
    """A submittable request type and its direct assignment configuration.

    ``default_job_roles`` drives the ``job_role_based`` strategy; the
    remaining columns become the optimal-assignee search options.
    """

    __tablename__ = "request_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    default_job_roles: Mapped[list | None] = mapped_column(JSON, nullable=True)
    selected_user_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    assignment_strategy: Mapped[str] = mapped_column(
        String(32), nullable=False, default="first_available", server_default=sql_text("'first_available'")
    )
    expertise_tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    geographic_scope: Mapped[str | None] = mapped_column(String(32), nullable=True)
    workload_balancing_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    rules: Mapped[list[AssignmentRule]] = relationship(back_populates="request_type")


class AssignmentRule(Base):
    """Organization-defined routing rule for one request type.

    Lower ``priority`` evaluates first; ties resolve by ``created_at``
    then ``id``.  Rules are soft-disabled through ``active``.
    """

    __tablename__ = "assignment_rules"
    __table_args__ = (
        Index("ix_assignment_rules_scope", "organization_id", "request_type_id", "priority"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    request_type_id: Mapped[str] = mapped_column(ForeignKey("request_types.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(32), nullable=False)
    conditions: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    strategy: Mapped[str] = mapped_column(
        String(32), nullable=False, default="first_available", server_default=sql_text("'first_available'")
    )
    escalation_policy: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=sql_text("0"))
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    request_type: Mapped[RequestType] = relationship(back_populates="rules")


# ---------------------------------------------------------------------------
# Workload aggregate (maintained by the analytics aggregator, read-only here)
# ---------------------------------------------------------------------------


class ApproverWorkload(Base):
    __tablename__ = "approver_workloads"

    approver_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    active_request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=sql_text("0"))
    pending_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=sql_text("0"))
    avg_pending_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Delegation ledger and assignment audit
# ---------------------------------------------------------------------------


class Delegation(Base):
    """Temporary transfer of approval authority.

    ``request_id`` is NULL for a standing delegation covering every
    request routed to ``original_approver_id``.
    """

    __tablename__ = "approval_delegations"
    __table_args__ = (
        Index("ix_approval_delegations_original", "organization_id", "original_approver_id", "active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    request_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    original_approver_id: Mapped[str] = mapped_column(String(36), nullable=False)
    delegate_approver_id: Mapped[str] = mapped_column(String(36), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


class AssignmentOutcome(Base):
    """Append-only record of one approver assignment, read by analytics."""

    __tablename__ = "assignment_outcomes"
    __table_args__ = (
        Index("ix_assignment_outcomes_org_created", "organization_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    request_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    rule_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    approver_id: Mapped[str] = mapped_column(String(36), nullable=False)
    job_role_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    assignment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    assignment_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    response_time_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class AuditEvent(Base):
    """Append-only audit log for rule administration and delegation changes.

    Rows are immutable by default (``immutable=True``).
    """

    __tablename__ = "audit_events"

    audit_event_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(128), nullable=False, default="system", server_default=sql_text("'system'"),
    )
    target_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(),
    )
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sql_text("true"),
    )
