"""Tests for assignflow/routing/evaluator.py."""
from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from assignflow.core.constants import METHOD_FALLBACK, METHOD_RULE
from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError
from assignflow.db.models import AssignmentRule, RequestType
from assignflow.routing.evaluator import RulePriorityEvaluator, evaluate_assignment_rules
from assignflow.routing.types import CandidateUser

ORG = "org-a"
OTHER = "org-b"
CTX = OrgContext(ORG)


def _cand(user_id, role, org=ORG, **kwargs) -> CandidateUser:
    return CandidateUser(id=user_id, organization_id=org, role=role, **kwargs)


def _request_type(db, org=ORG) -> RequestType:
    rt = RequestType(organization_id=org, name="Expense")
    db.add(rt)
    db.flush()
    return rt


def _rule(db, rt, priority, rule_type="role_based", conditions=None, strategy="first_available", **kwargs):
    rule = AssignmentRule(
        organization_id=kwargs.pop("org", ORG),
        request_type_id=rt.id,
        name=kwargs.pop("name", f"rule-{priority}"),
        rule_type=rule_type,
        conditions=conditions,
        strategy=strategy,
        priority=priority,
        **kwargs,
    )
    db.add(rule)
    db.flush()
    return rule


class _CountingFilters:
    """Wraps a filter chain and records which rule conditions it was asked about."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def filter(self, ctx, rule_type, conditions, pool, request_context=None):
        self.calls.append((rule_type, conditions))
        return self.inner.filter(ctx, rule_type, conditions, pool, request_context)


POOL = [
    _cand("u-user", "user"),
    _cand("u-manager", "manager"),
    _cand("u-admin", "admin"),
    _cand("u-super", "superadmin"),
    _cand("x-manager", "manager", org=OTHER),
]


# ===========================================================================
# Scenarios
# ===========================================================================

class TestScenarios:
    def test_no_rules_falls_back_to_manager(self, db_session):
        pool = [_cand("u1", "user"), _cand("u2", "manager")]

        result = evaluate_assignment_rules(db_session, CTX, "rt1", {}, pool)

        assert [u.id for u in result] == ["u2"]

    def test_empty_first_rule_falls_through_to_second(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, conditions={"roles": ["admin"]})
        second = _rule(db_session, rt, 2, conditions={"roles": ["manager"]})
        pool = [_cand("u1", "user"), _cand("u2", "manager")]
        evaluator = RulePriorityEvaluator.for_session(db_session, fallback_roles=("superadmin",))

        decision = evaluator.evaluate_with_trace(CTX, rt.id, {}, pool)

        assert [u.id for u in decision.candidates] == ["u2"]
        assert decision.method == METHOD_RULE
        assert decision.rule_id == second.id
        assert decision.rules_evaluated == 2


# ===========================================================================
# Priority short-circuit
# ===========================================================================

class TestPriorityShortCircuit:
    def test_later_rules_never_evaluated_after_a_match(self, db_session):
        rt = _request_type(db_session)
        first = _rule(db_session, rt, 1, conditions={"roles": ["manager"]})
        _rule(db_session, rt, 2, conditions={"roles": ["admin"]})
        evaluator = RulePriorityEvaluator.for_session(db_session)
        spy = _CountingFilters(evaluator.filters)
        evaluator.filters = spy

        decision = evaluator.evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.rule_id == first.id
        assert len(spy.calls) == 1
        assert spy.calls[0][1].roles == ["manager"]

    def test_inactive_rules_are_skipped(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 0, conditions={"roles": ["superadmin"]}, active=False)
        live = _rule(db_session, rt, 5, conditions={"roles": ["admin"]})

        decision = RulePriorityEvaluator.for_session(db_session).evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.rule_id == live.id
        assert [u.id for u in decision.candidates] == ["u-admin"]

    def test_strategy_applied_to_winning_rule(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, conditions={"roles": ["admin", "superadmin"]}, strategy="manual")

        result = RulePriorityEvaluator.for_session(db_session).evaluate(CTX, rt.id, {}, POOL)

        assert [u.id for u in result] == ["u-admin", "u-super"]


# ===========================================================================
# Fallback
# ===========================================================================

class TestFallback:
    def test_fallback_is_exact_elevated_subset_of_own_org(self, db_session):
        decision = RulePriorityEvaluator.for_session(db_session).evaluate_with_trace(CTX, "rt-none", {}, POOL)

        assert decision.method == METHOD_FALLBACK
        assert [u.id for u in decision.candidates] == ["u-manager", "u-admin", "u-super"]

    def test_fallback_roles_come_from_settings(self, db_session, monkeypatch):
        from assignflow.core.settings import get_settings

        monkeypatch.setenv("FALLBACK_ROLES", "superadmin")
        get_settings.cache_clear()
        try:
            result = RulePriorityEvaluator.for_session(db_session).evaluate(CTX, "rt-none", {}, POOL)
        finally:
            get_settings.cache_clear()

        assert [u.id for u in result] == ["u-super"]

    def test_no_rule_matches(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, conditions={"roles": ["team_leader"]})

        decision = RulePriorityEvaluator.for_session(db_session).evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.method == METHOD_FALLBACK
        assert decision.rules_evaluated == 1

    def test_malformed_rule_is_skipped(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, conditions={"roles": "admin"})
        good = _rule(db_session, rt, 2, conditions={"roles": ["admin"]})

        decision = RulePriorityEvaluator.for_session(db_session).evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.rule_id == good.id

    def test_unknown_rule_type_falls_through(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, rule_type="location_based", conditions={"roles": ["admin"]})

        decision = RulePriorityEvaluator.for_session(db_session).evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.method == METHOD_FALLBACK

    def test_rule_store_failure_degrades_to_fallback(self, db_session):
        evaluator = RulePriorityEvaluator.for_session(db_session)

        with patch.object(evaluator.store, "fetch_active_rules", side_effect=RoutingStoreError("down")):
            decision = evaluator.evaluate_with_trace(CTX, "rt-1", {}, POOL)

        assert decision.method == METHOD_FALLBACK
        assert [u.id for u in decision.candidates] == ["u-manager", "u-admin", "u-super"]

    def test_team_lookup_driver_error_degrades_to_fallback(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, rule_type="team_hierarchy", conditions={"team_ids": ["t-1"]})
        evaluator = RulePriorityEvaluator.for_session(db_session)
        error = OperationalError("SELECT", {}, Exception("connection lost"))

        with patch.object(evaluator.store, "fetch_team_member_ids", side_effect=error):
            decision = evaluator.evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.method == METHOD_FALLBACK

    def test_custom_rule_routes_only_when_predicate_holds(self, db_session):
        rt = _request_type(db_session)
        custom = _rule(
            db_session, rt, 1, rule_type="custom",
            conditions={"predicates": [{"kind": "amount_threshold", "op": "gt", "value": 1000}]},
        )
        evaluator = RulePriorityEvaluator.for_session(db_session)

        big = evaluator.evaluate_with_trace(CTX, rt.id, {"amount": 5000}, POOL)
        small = evaluator.evaluate_with_trace(CTX, rt.id, {"amount": 50}, POOL)

        assert big.rule_id == custom.id
        assert [u.id for u in big.candidates] == ["u-admin"]
        assert small.method == METHOD_FALLBACK

    def test_other_organization_rules_ignored(self, db_session):
        rt = _request_type(db_session)
        _rule(db_session, rt, 1, conditions={"roles": ["user"]}, org=OTHER)

        decision = RulePriorityEvaluator.for_session(db_session).evaluate_with_trace(CTX, rt.id, {}, POOL)

        assert decision.method == METHOD_FALLBACK
