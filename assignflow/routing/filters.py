"""Candidate filter chain.

Narrows the organization's user pool to the users a rule considers
eligible.  The last step always drops users from other organizations,
whatever the rule type.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from assignflow.core.constants import RuleType
from assignflow.core.context import OrgContext
from assignflow.core.errors import InvalidRuleConfiguration
from assignflow.routing.conditions import RuleConditions, evaluate_predicate, parse_conditions
from assignflow.routing.job_roles import JobRoleDirectory
from assignflow.routing.store import RoutingStore
from assignflow.routing.types import CandidateUser

logger = logging.getLogger(__name__)


def same_organization(ctx: OrgContext, users: Iterable[CandidateUser]) -> list[CandidateUser]:
    return [user for user in users if user.organization_id == ctx.organization_id]


class CandidateFilterChain:
    def __init__(self, store: RoutingStore, directory: JobRoleDirectory) -> None:
        self.store = store
        self.directory = directory

    def filter(
        self,
        ctx: OrgContext,
        rule_type: str,
        conditions: RuleConditions | dict[str, Any] | None,
        pool: Iterable[CandidateUser],
        request_context: dict[str, Any] | None = None,
    ) -> list[CandidateUser]:
        """Return the users in *pool* eligible under one rule.

        Missing or invalid conditions yield an empty list so the caller
        falls through to its next rule.  Store errors propagate.
        """
        pool = list(pool)
        request_context = request_context or {}

        if not isinstance(conditions, RuleConditions):
            try:
                conditions = parse_conditions(conditions)
            except InvalidRuleConfiguration as exc:
                logger.warning("Rule conditions rejected (org=%s type=%s): %s", ctx.organization_id, rule_type, exc)
                return []

        match rule_type:
            case RuleType.ROLE_BASED:
                selected = self._by_role(conditions, pool)
            case RuleType.JOB_ROLE_BASED:
                selected = self._by_job_role(ctx, conditions, pool)
            case RuleType.TEAM_HIERARCHY:
                selected = self._by_team(ctx, conditions, pool)
            case RuleType.CUSTOM:
                selected = self._by_predicates(conditions, pool, request_context)
            case _:
                logger.warning("Unknown rule_type %r (org=%s)", rule_type, ctx.organization_id)
                selected = []

        return same_organization(ctx, selected)

    def _by_role(self, conditions: RuleConditions, pool: list[CandidateUser]) -> list[CandidateUser]:
        if not conditions.roles:
            return []
        roles = set(conditions.roles)
        return [user for user in pool if user.role in roles]

    def _by_job_role(
        self, ctx: OrgContext, conditions: RuleConditions, pool: list[CandidateUser]
    ) -> list[CandidateUser]:
        if not conditions.job_roles:
            return []
        holders = self.directory.user_ids_for_job_roles(ctx, conditions.job_roles)
        return [user for user in pool if user.id in holders]

    def _by_team(
        self, ctx: OrgContext, conditions: RuleConditions, pool: list[CandidateUser]
    ) -> list[CandidateUser]:
        if not conditions.team_ids:
            return []
        members = self.store.fetch_team_member_ids(ctx, conditions.team_ids)
        return [user for user in pool if user.id in members]

    def _by_predicates(
        self,
        conditions: RuleConditions,
        pool: list[CandidateUser],
        request_context: dict[str, Any],
    ) -> list[CandidateUser]:
        if not conditions.predicates:
            return []
        if not any(evaluate_predicate(p, request_context) for p in conditions.predicates):
            return []
        allowed = set(conditions.restrict_to_roles)
        return [user for user in pool if user.role in allowed]
