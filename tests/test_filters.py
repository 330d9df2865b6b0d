"""Tests for assignflow/routing/filters.py."""
from __future__ import annotations

import pytest

from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError
from assignflow.routing.filters import CandidateFilterChain, same_organization
from assignflow.routing.types import CandidateUser

ORG = "org-a"
OTHER = "org-b"
CTX = OrgContext(ORG)


class _FakeStore:
    def __init__(self, team_members=None, fail=False):
        self.team_members = set(team_members or ())
        self.fail = fail
        self.team_calls = []

    def fetch_team_member_ids(self, ctx, team_ids):
        self.team_calls.append(list(team_ids))
        if self.fail:
            raise RoutingStoreError("team memberships unavailable")
        return set(self.team_members)


class _FakeDirectory:
    def __init__(self, holders=None):
        self.holders = set(holders or ())
        self.calls = []

    def user_ids_for_job_roles(self, ctx, names_or_ids):
        self.calls.append(list(names_or_ids))
        return set(self.holders)


def _cand(user_id, org=ORG, role="user", **kwargs) -> CandidateUser:
    return CandidateUser(id=user_id, organization_id=org, role=role, **kwargs)


# A pool in which every rule type would match someone from another organization
# if isolation were not enforced.
MIXED_POOL = [
    _cand("a-user", role="user"),
    _cand("a-manager", role="manager"),
    _cand("a-admin", role="admin"),
    _cand("b-manager", org=OTHER, role="manager"),
    _cand("b-admin", org=OTHER, role="admin"),
    _cand("b-superadmin", org=OTHER, role="superadmin"),
]

RULES = [
    ("role_based", {"roles": ["manager", "admin", "superadmin"]}),
    ("job_role_based", {"job_roles": ["Finance Approver"]}),
    ("team_hierarchy", {"team_ids": ["team-1"]}),
    ("custom", {"predicates": [{"kind": "priority_equals", "value": "urgent"}]}),
]


def _chain():
    everyone = {u.id for u in MIXED_POOL}
    return CandidateFilterChain(_FakeStore(team_members=everyone), _FakeDirectory(holders=everyone))


# ===========================================================================
# Organization isolation
# ===========================================================================

class TestOrganizationIsolation:
    @pytest.mark.parametrize("rule_type,conditions", RULES)
    def test_never_returns_foreign_users(self, rule_type, conditions):
        result = _chain().filter(CTX, rule_type, conditions, MIXED_POOL, {"priority": "urgent"})

        assert result, "the rule should match someone in the caller's organization"
        assert all(user.organization_id == ORG for user in result)

    @pytest.mark.parametrize("rule_type,conditions", RULES)
    def test_foreign_only_pool_yields_nothing(self, rule_type, conditions):
        foreign = [u for u in MIXED_POOL if u.organization_id == OTHER]
        result = _chain().filter(CTX, rule_type, conditions, foreign, {"priority": "urgent"})

        assert result == []

    def test_same_organization_helper(self):
        assert [u.id for u in same_organization(CTX, MIXED_POOL)] == ["a-user", "a-manager", "a-admin"]


# ===========================================================================
# Rule types
# ===========================================================================

class TestRuleTypes:
    def test_role_based(self):
        result = _chain().filter(CTX, "role_based", {"roles": ["manager"]}, MIXED_POOL)
        assert [u.id for u in result] == ["a-manager"]

    def test_role_based_without_roles_is_empty(self):
        assert _chain().filter(CTX, "role_based", {}, MIXED_POOL) == []

    def test_job_role_based_uses_directory(self):
        directory = _FakeDirectory(holders={"a-user"})
        chain = CandidateFilterChain(_FakeStore(), directory)

        result = chain.filter(CTX, "job_role_based", {"job_roles": ["Finance Approver"]}, MIXED_POOL)

        assert [u.id for u in result] == ["a-user"]
        assert directory.calls == [["Finance Approver"]]

    def test_job_role_based_without_job_roles_skips_lookup(self):
        directory = _FakeDirectory(holders={"a-user"})
        chain = CandidateFilterChain(_FakeStore(), directory)

        assert chain.filter(CTX, "job_role_based", {"roles": ["user"]}, MIXED_POOL) == []
        assert directory.calls == []

    def test_team_hierarchy_uses_membership(self):
        store = _FakeStore(team_members={"a-admin"})
        chain = CandidateFilterChain(store, _FakeDirectory())

        result = chain.filter(CTX, "team_hierarchy", {"team_ids": ["team-1"]}, MIXED_POOL)

        assert [u.id for u in result] == ["a-admin"]
        assert store.team_calls == [["team-1"]]

    def test_custom_predicate_holds_restricts_to_elevated_roles(self):
        conditions = {"predicates": [{"kind": "amount_threshold", "op": "gt", "value": 1000}]}
        result = _chain().filter(CTX, "custom", conditions, MIXED_POOL, {"amount": 2500})
        assert [u.id for u in result] == ["a-admin"]

    def test_custom_restrict_to_roles_override(self):
        conditions = {
            "predicates": [{"kind": "priority_equals", "value": "urgent"}],
            "restrict_to_roles": ["manager"],
        }
        result = _chain().filter(CTX, "custom", conditions, MIXED_POOL, {"priority": "urgent"})
        assert [u.id for u in result] == ["a-manager"]

    def test_custom_predicate_not_holding_yields_nothing(self):
        conditions = {"predicates": [{"kind": "amount_threshold", "op": "gt", "value": 1000}]}
        assert _chain().filter(CTX, "custom", conditions, MIXED_POOL, {"amount": 10}) == []

    def test_custom_legacy_text(self):
        result = _chain().filter(CTX, "custom", {"custom_logic": "amount"}, MIXED_POOL, {"amount": 1001})
        assert [u.id for u in result] == ["a-admin"]

    def test_unknown_rule_type_yields_nothing(self):
        assert _chain().filter(CTX, "department_based", {"roles": ["manager"]}, MIXED_POOL) == []

    @pytest.mark.parametrize("conditions", ["manager", ["manager"], {"roles": "manager"}])
    def test_invalid_conditions_yield_nothing(self, conditions):
        assert _chain().filter(CTX, "role_based", conditions, MIXED_POOL) == []

    def test_store_errors_propagate(self):
        chain = CandidateFilterChain(_FakeStore(fail=True), _FakeDirectory())
        with pytest.raises(RoutingStoreError):
            chain.filter(CTX, "team_hierarchy", {"team_ids": ["team-1"]}, MIXED_POOL)
