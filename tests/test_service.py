"""Tests for assignflow/routing/service.py."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from assignflow.core.constants import METHOD_FALLBACK, METHOD_RULE
from assignflow.core.context import OrgContext
from assignflow.db.models import (
    ApproverWorkload,
    AssignmentOutcome,
    AssignmentRule,
    JobRole,
    OrgUser,
    RequestType,
    UserJobRole,
)
from assignflow.routing.delegation import DelegationLedger
from assignflow.routing.service import AssignmentService

ORG = "org-a"
CTX = OrgContext(ORG, user_id="submitter")
NOW = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


def _seed(db):
    """Two finance approvers (one primary, busier), a manager and a job-role rule."""
    finance = JobRole(organization_id=ORG, name="Finance Approver")
    db.add(finance)
    primary = OrgUser(organization_id=ORG, name="Primary", role="user")
    backup = OrgUser(organization_id=ORG, name="Backup", role="user")
    manager = OrgUser(organization_id=ORG, name="Manager", role="manager")
    db.add_all([primary, backup, manager])
    db.flush()
    db.add(UserJobRole(organization_id=ORG, user_id=primary.id, job_role_id=finance.id, is_primary=True))
    db.add(UserJobRole(organization_id=ORG, user_id=backup.id, job_role_id=finance.id, is_primary=False))
    db.add(ApproverWorkload(approver_id=primary.id, organization_id=ORG, pending_count=1, active_request_count=1))
    rt = RequestType(organization_id=ORG, name="Expense")
    db.add(rt)
    db.flush()
    rule = AssignmentRule(
        organization_id=ORG,
        request_type_id=rt.id,
        name="Finance approvers",
        rule_type="job_role_based",
        conditions={"job_roles": ["Finance Approver"]},
        strategy="least_loaded",
        priority=0,
    )
    db.add(rule)
    db.flush()
    return {"finance": finance, "primary": primary, "backup": backup, "manager": manager, "rt": rt, "rule": rule}


def _outcomes(db):
    return list(db.execute(select(AssignmentOutcome)).scalars().all())


class TestAssignRequest:
    def test_rule_assignment_recorded(self, db_session):
        seeded = _seed(db_session)
        service = AssignmentService(db_session)

        result = service.assign_request(CTX, "req-1", seeded["rt"].id, {"amount": 10}, now=NOW)

        # backup has no workload row (score 0) and beats the busier primary holder
        assert result.approver_ids == [seeded["backup"].id]
        assert result.method == METHOD_RULE
        assert result.rule_id == seeded["rule"].id
        assert result.rule_name == "Finance approvers"
        assert result.strategy == "least_loaded"
        assert result.delegated_from == {}
        assert result.outcomes_recorded == 1
        [outcome] = _outcomes(db_session)
        assert outcome.request_id == "req-1"
        assert outcome.approver_id == seeded["backup"].id
        assert outcome.rule_id == seeded["rule"].id
        assert outcome.job_role_id == seeded["finance"].id
        assert outcome.assignment_method == METHOD_RULE
        assert outcome.assignment_score == 0.0

    def test_delegation_overrides_selected_approver(self, db_session):
        seeded = _seed(db_session)
        DelegationLedger(db_session).create_delegation(
            CTX, "req-1", seeded["backup"].id, seeded["manager"].id,
            expires_at=NOW + timedelta(days=1), now=NOW,
        )

        result = AssignmentService(db_session).assign_request(CTX, "req-1", seeded["rt"].id, now=NOW)

        assert result.approver_ids == [seeded["manager"].id]
        assert result.delegated_from == {seeded["manager"].id: seeded["backup"].id}
        recorded = [o for o in _outcomes(db_session) if o.assignment_method == METHOD_RULE]
        assert [o.approver_id for o in recorded] == [seeded["manager"].id]

    def test_delegate_outside_organization_is_ignored(self, db_session):
        seeded = _seed(db_session)
        DelegationLedger(db_session).create_delegation(CTX, None, seeded["backup"].id, "someone-else", now=NOW)

        result = AssignmentService(db_session).assign_request(CTX, "req-1", seeded["rt"].id, now=NOW)

        assert result.approver_ids == [seeded["backup"].id]
        assert result.delegated_from == {}

    def test_preview_records_nothing(self, db_session):
        seeded = _seed(db_session)

        result = AssignmentService(db_session).assign_request(
            CTX, "req-1", seeded["rt"].id, record=False, now=NOW
        )

        assert result.approver_ids == [seeded["backup"].id]
        assert result.outcomes_recorded == 0
        assert _outcomes(db_session) == []

    def test_fallback_when_no_rules(self, db_session):
        seeded = _seed(db_session)

        result = AssignmentService(db_session).assign_request(CTX, "req-2", "rt-without-rules", now=NOW)

        assert result.method == METHOD_FALLBACK
        assert result.approver_ids == [seeded["manager"].id]
        assert _outcomes(db_session)[0].assignment_method == METHOD_FALLBACK

    def test_empty_selection_returned_as_is(self, db_session):
        db_session.add(OrgUser(organization_id=ORG, role="user"))
        db_session.flush()

        result = AssignmentService(db_session).assign_request(CTX, "req-3", "rt-x", now=NOW)

        assert result.assignees == []
        assert result.outcomes_recorded == 0
        assert _outcomes(db_session) == []

    def test_explicit_candidate_pool(self, db_session):
        seeded = _seed(db_session)
        service = AssignmentService(db_session)
        pool = [u for u in service.store.load_candidate_pool(CTX) if u.id == seeded["primary"].id]

        result = service.assign_request(CTX, "req-4", seeded["rt"].id, candidate_pool=pool, now=NOW)

        assert result.approver_ids == [seeded["primary"].id]

    def test_outcome_write_failure_is_swallowed(self, db_session):
        seeded = _seed(db_session)
        service = AssignmentService(db_session)
        error = OperationalError("SAVEPOINT", {}, Exception("database is locked"))

        with patch.object(db_session, "begin_nested", side_effect=error):
            result = service.assign_request(CTX, "req-5", seeded["rt"].id, now=NOW)

        assert result.approver_ids == [seeded["backup"].id]
        assert result.outcomes_recorded == 0


class TestJobRoleAttribution:
    def _seed_dual_role(self, db, rule_strategy, default_job_roles=None):
        """One approver holding Finance (non-primary) and Legal (primary)."""
        finance = JobRole(organization_id=ORG, name="Finance Approver")
        legal = JobRole(organization_id=ORG, name="Legal Reviewer")
        approver = OrgUser(organization_id=ORG, name="Dual", role="user")
        db.add_all([finance, legal, approver])
        db.flush()
        db.add(UserJobRole(organization_id=ORG, user_id=approver.id, job_role_id=finance.id, is_primary=False))
        db.add(UserJobRole(organization_id=ORG, user_id=approver.id, job_role_id=legal.id, is_primary=True))
        rt = RequestType(organization_id=ORG, name="Expense", default_job_roles=default_job_roles)
        db.add(rt)
        db.flush()
        db.add(
            AssignmentRule(
                organization_id=ORG,
                request_type_id=rt.id,
                name="Finance approvers",
                rule_type="job_role_based",
                conditions={"job_roles": ["Finance Approver"]},
                strategy=rule_strategy,
                priority=0,
            )
        )
        db.flush()
        return finance, legal, approver, rt

    def test_outcome_records_matched_default_job_role(self, db_session):
        finance, _, approver, rt = self._seed_dual_role(
            db_session, "job_role_based", default_job_roles=["Finance Approver"]
        )

        result = AssignmentService(db_session).assign_request(CTX, "req-jr", rt.id, now=NOW)

        assert result.approver_ids == [approver.id]
        [outcome] = _outcomes(db_session)
        assert outcome.job_role_id == finance.id

    def test_outcome_records_rule_job_role_over_primary(self, db_session):
        finance, _, approver, rt = self._seed_dual_role(db_session, "first_available")

        AssignmentService(db_session).assign_request(CTX, "req-jr2", rt.id, now=NOW)

        [outcome] = _outcomes(db_session)
        assert outcome.approver_id == approver.id
        assert outcome.job_role_id == finance.id

    def test_fallback_outcome_uses_primary_job_role(self, db_session):
        finance, legal, approver, _ = self._seed_dual_role(db_session, "first_available")
        manager = OrgUser(organization_id=ORG, name="Manager", role="manager")
        db_session.add(manager)
        db_session.flush()
        db_session.add(UserJobRole(organization_id=ORG, user_id=manager.id, job_role_id=legal.id, is_primary=True))
        db_session.flush()

        AssignmentService(db_session).assign_request(CTX, "req-jr3", "rt-without-rules", now=NOW)

        [outcome] = _outcomes(db_session)
        assert outcome.approver_id == manager.id
        assert outcome.job_role_id == legal.id
