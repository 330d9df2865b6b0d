"""Rule priority evaluation.

Rules for a request type are tried in ascending priority; the first
rule whose filter yields at least one candidate decides the assignment
and no later rule is consulted.  When nothing matches, or the store
cannot be read, the request falls back to the organization's managers
and admins.  Evaluation never raises into the submission flow.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assignflow.core.constants import DEFAULT_FALLBACK_ROLES, METHOD_FALLBACK, METHOD_RULE, RuleType
from assignflow.core.context import OrgContext
from assignflow.core.errors import InvalidRuleConfiguration, RoutingError, RoutingStoreError
from assignflow.routing.conditions import RuleConditions, parse_conditions
from assignflow.routing.filters import CandidateFilterChain, same_organization
from assignflow.routing.job_roles import JobRoleDirectory
from assignflow.routing.store import RoutingStore
from assignflow.routing.strategies import AssignmentStrategySelector
from assignflow.routing.types import CandidateUser, RoutingDecision
from assignflow.routing.workload import WorkloadSnapshotProvider

logger = logging.getLogger(__name__)


class RulePriorityEvaluator:
    def __init__(
        self,
        store: RoutingStore,
        filters: CandidateFilterChain,
        selector: AssignmentStrategySelector,
        fallback_roles: Sequence[str] = DEFAULT_FALLBACK_ROLES,
    ) -> None:
        self.store = store
        self.filters = filters
        self.selector = selector
        self.fallback_roles = tuple(fallback_roles)

    @classmethod
    def for_session(
        cls,
        db_session: Session,
        fallback_roles: Sequence[str] | None = None,
        rng: random.Random | None = None,
    ) -> RulePriorityEvaluator:
        """Wire the default component graph over one SQLAlchemy session."""
        if fallback_roles is None:
            from assignflow.core.settings import get_settings

            fallback_roles = get_settings().fallback_roles
        store = RoutingStore(db_session)
        workload = WorkloadSnapshotProvider(store)
        directory = JobRoleDirectory(store, workload)
        return cls(
            store=store,
            filters=CandidateFilterChain(store, directory),
            selector=AssignmentStrategySelector(workload, directory, rng=rng),
            fallback_roles=fallback_roles,
        )

    def evaluate(
        self,
        ctx: OrgContext,
        request_type_id: str,
        request_context: dict[str, Any],
        candidate_pool: Iterable[CandidateUser],
    ) -> list[CandidateUser]:
        return self.evaluate_with_trace(ctx, request_type_id, request_context, candidate_pool).candidates

    def evaluate_with_trace(
        self,
        ctx: OrgContext,
        request_type_id: str,
        request_context: dict[str, Any],
        candidate_pool: Iterable[CandidateUser],
    ) -> RoutingDecision:
        pool = list(candidate_pool)
        request_context = request_context or {}
        evaluated = 0

        try:
            rules = self.store.fetch_active_rules(ctx, request_type_id)
            request_type = self.store.fetch_request_type(ctx, request_type_id) if rules else None

            for rule in rules:
                evaluated += 1
                try:
                    conditions = parse_conditions(rule.conditions)
                except InvalidRuleConfiguration as exc:
                    logger.warning("Rule %s skipped: %s", rule.id, exc)
                    continue

                candidates = self.filters.filter(ctx, rule.rule_type, conditions, pool, request_context)
                if not candidates:
                    logger.debug("Rule %s (%s) matched no candidates", rule.id, rule.name)
                    continue

                selected, job_roles = self.selector.select_with_job_roles(
                    ctx, rule.strategy, candidates, conditions, request_context, request_type
                )
                selected = same_organization(ctx, selected)
                if rule.rule_type == RuleType.JOB_ROLE_BASED:
                    job_roles = {**self._rule_job_roles(ctx, conditions, selected), **job_roles}
                logger.info(
                    "Request type %s routed by rule %s (%s) strategy=%s assignees=%d",
                    request_type_id, rule.id, rule.name, rule.strategy, len(selected),
                )
                return RoutingDecision(
                    candidates=selected,
                    method=METHOD_RULE,
                    rule_id=rule.id,
                    rule_name=rule.name,
                    strategy=rule.strategy,
                    job_roles={u.id: job_roles[u.id] for u in selected if u.id in job_roles},
                    rules_evaluated=evaluated,
                )
        except (RoutingError, SQLAlchemyError):
            logger.warning(
                "Rule evaluation failed for request type %s (org=%s); using fallback roles",
                request_type_id, ctx.organization_id, exc_info=True,
            )

        return self._fallback(ctx, pool, evaluated)

    def _rule_job_roles(
        self, ctx: OrgContext, conditions: RuleConditions, selected: list[CandidateUser]
    ) -> dict[str, str]:
        """Job roles of a ``job_role_based`` rule held by the selected users."""
        if not conditions.job_roles or not selected:
            return {}
        try:
            return self.selector.directory.held_job_roles(
                ctx, conditions.job_roles, [user.id for user in selected]
            )
        except RoutingStoreError:
            logger.warning("Job role attribution unavailable (org=%s)", ctx.organization_id, exc_info=True)
            return {}

    def _fallback(self, ctx: OrgContext, pool: list[CandidateUser], evaluated: int) -> RoutingDecision:
        roles = set(self.fallback_roles)
        candidates = [user for user in same_organization(ctx, pool) if user.role in roles]
        if not candidates:
            logger.warning("No eligible approver in org=%s; request stays unassigned", ctx.organization_id)
        return RoutingDecision(candidates=candidates, method=METHOD_FALLBACK, rules_evaluated=evaluated)


def evaluate_assignment_rules(
    db_session: Session,
    ctx: OrgContext,
    request_type_id: str,
    request_data: dict[str, Any],
    candidate_pool: Iterable[CandidateUser],
) -> list[CandidateUser]:
    """Route one submitted request; returns the selected approvers."""
    evaluator = RulePriorityEvaluator.for_session(db_session)
    return evaluator.evaluate(ctx, request_type_id, request_data, candidate_pool)
