"""Tests for assignflow/routing/escalation.py."""
from __future__ import annotations

import pytest

from assignflow.core.context import OrgContext
from assignflow.routing.conditions import EscalationPolicy
from assignflow.routing.escalation import EscalationPlanner
from assignflow.routing.types import CandidateUser

CTX = OrgContext("org-a")

POOL = [
    CandidateUser(id="m1", organization_id="org-a", role="manager"),
    CandidateUser(id="a1", organization_id="org-a", role="admin"),
    CandidateUser(id="s1", organization_id="org-a", role="superadmin"),
    CandidateUser(id="m2", organization_id="org-b", role="manager"),
]

POLICY = {
    "timeout_hours": 48,
    "escalation_levels": [
        {"level": 2, "roles": ["admin", "superadmin"], "timeout_hours": 24},
        {"level": 1, "roles": ["manager"], "timeout_hours": 24},
    ],
}


class TestEscalationPlanner:
    @pytest.mark.parametrize(
        "hours,expected",
        [
            (0, []),
            (47.9, []),
            (48, ["m1"]),
            (71, ["m1"]),
            (72, ["a1", "s1"]),
            (500, ["a1", "s1"]),
        ],
    )
    def test_targets_follow_cumulative_timeouts(self, hours, expected):
        targets = EscalationPlanner().targets_for(CTX, POLICY, hours, POOL)
        assert [u.id for u in targets] == expected

    def test_current_level(self):
        policy = EscalationPolicy.model_validate(POLICY)
        planner = EscalationPlanner()

        assert planner.current_level(policy, 10) is None
        assert planner.current_level(policy, 50).level == 1
        assert planner.current_level(policy, 80).level == 2

    def test_no_policy_or_no_levels(self):
        planner = EscalationPlanner()
        assert planner.targets_for(CTX, None, 1000, POOL) == []
        assert planner.targets_for(CTX, {"timeout_hours": 1}, 1000, POOL) == []

    def test_invalid_policy_behaves_like_none(self):
        assert EscalationPlanner().targets_for(CTX, {"timeout_hours": "soon"}, 1000, POOL) == []
