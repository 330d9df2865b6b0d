"""Assignment strategies.

Given the candidates a rule produced, pick who actually receives the
request.  Every strategy returns a list; most return one user,
``expertise_based`` and ``manual`` may return several.
"""
from __future__ import annotations

import logging
import random
from typing import Any

from assignflow.core.constants import Strategy, canonical_strategy
from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError, WorkloadUnavailableError
from assignflow.routing.conditions import RuleConditions
from assignflow.routing.job_roles import AssigneeSearchOptions, JobRoleDirectory
from assignflow.routing.types import CandidateUser, RequestTypeConfig
from assignflow.routing.workload import WorkloadSnapshotProvider

logger = logging.getLogger(__name__)


class AssignmentStrategySelector:
    def __init__(
        self,
        workload: WorkloadSnapshotProvider,
        directory: JobRoleDirectory,
        rng: random.Random | None = None,
    ) -> None:
        self.workload = workload
        self.directory = directory
        self.rng = rng or random.Random()

    def select(
        self,
        ctx: OrgContext,
        strategy: str | None,
        candidates: list[CandidateUser],
        conditions: RuleConditions | None = None,
        request_context: dict[str, Any] | None = None,
        request_type: RequestTypeConfig | None = None,
    ) -> list[CandidateUser]:
        selected, _ = self.select_with_job_roles(
            ctx, strategy, candidates, conditions, request_context, request_type
        )
        return selected

    def select_with_job_roles(
        self,
        ctx: OrgContext,
        strategy: str | None,
        candidates: list[CandidateUser],
        conditions: RuleConditions | None = None,
        request_context: dict[str, Any] | None = None,
        request_type: RequestTypeConfig | None = None,
    ) -> tuple[list[CandidateUser], dict[str, str]]:
        """Like ``select`` but also return ``{user_id: job_role_id}``.

        The mapping names the job role each assignee was matched through;
        it is only filled by ``job_role_based`` when the request type
        names default job roles.
        """
        if not candidates:
            return [], {}
        conditions = conditions or RuleConditions()
        request_context = request_context or {}

        match canonical_strategy(strategy):
            case Strategy.ROUND_ROBIN:
                # Stateless: no rotation cursor is persisted between calls.
                return [min(candidates, key=lambda user: user.id)], {}
            case Strategy.LEAST_LOADED:
                return self._least_loaded(ctx, candidates), {}
            case Strategy.EXPERTISE_BASED:
                return self._expertise(candidates, conditions), {}
            case Strategy.JOB_ROLE_BASED:
                return self._job_role(ctx, candidates, conditions, request_context, request_type)
            case Strategy.RANDOM:
                return [self.rng.choice(candidates)], {}
            case Strategy.MANUAL:
                return list(candidates), {}
            case _:
                return candidates[:1], {}

    def _least_loaded(self, ctx: OrgContext, candidates: list[CandidateUser]) -> list[CandidateUser]:
        try:
            scores = self.workload.scores(ctx, [user.id for user in candidates])
        except WorkloadUnavailableError:
            logger.warning("Workload unavailable; using candidate order (org=%s)", ctx.organization_id)
            return candidates[:1]

        best = min(
            candidates,
            key=lambda user: (scores.get(user.id, 0), user.primary_job_role is None, user.id),
        )
        return [best]

    def _expertise(self, candidates: list[CandidateUser], conditions: RuleConditions) -> list[CandidateUser]:
        wanted = set(conditions.expertise_required)
        if not wanted:
            return list(candidates)
        experts = [user for user in candidates if user.expertise_tags & wanted]
        # A missing expertise match never blocks assignment.
        return experts or list(candidates)

    def _job_role(
        self,
        ctx: OrgContext,
        candidates: list[CandidateUser],
        conditions: RuleConditions,
        request_context: dict[str, Any],
        request_type: RequestTypeConfig | None,
    ) -> tuple[list[CandidateUser], dict[str, str]]:
        if request_type is None:
            return candidates[:1], {}
        if not request_type.default_job_roles:
            if request_type.selected_user_ids:
                return self._selected_users(ctx, candidates, conditions, request_context, request_type), {}
            return candidates[:1], {}
        try:
            job_role_ids = self.directory.resolve_job_role_ids(ctx, request_type.default_job_roles)
        except RoutingStoreError:
            logger.warning("Job role lookup failed; using first candidate (org=%s)", ctx.organization_id)
            return candidates[:1], {}

        options = AssigneeSearchOptions(
            consider_workload=request_type.workload_balancing_enabled,
            expertise_required=request_type.expertise_tags,
            geographic_preference=request_type.geographic_preference,
            max_assignees=1,
        )
        matches = self.directory.find_optimal_matches(ctx, request_context, job_role_ids, candidates, options)
        if not matches:
            return candidates[:1], {}
        return [m.user for m in matches], {m.user.id: m.job_role_id for m in matches}

    def _selected_users(
        self,
        ctx: OrgContext,
        candidates: list[CandidateUser],
        conditions: RuleConditions,
        request_context: dict[str, Any],
        request_type: RequestTypeConfig,
    ) -> list[CandidateUser]:
        """Pick among the request type's hand-picked approvers.

        Expertise is a hard filter and location a soft one, as in the
        job-role search; the request type's own strategy then decides.
        """
        wanted = set(request_type.selected_user_ids)
        narrowed = [user for user in candidates if user.id in wanted]

        if request_type.expertise_tags:
            tags = set(request_type.expertise_tags)
            narrowed = [user for user in narrowed if user.expertise_tags & tags]

        location = request_context.get("location")
        if request_type.geographic_preference and location:
            local = [user for user in narrowed if user.location == location]
            if local:
                narrowed = local

        if not narrowed:
            return candidates[:1]

        strategy = canonical_strategy(request_type.assignment_strategy)
        if strategy == Strategy.JOB_ROLE_BASED:
            strategy = Strategy.FIRST_AVAILABLE
        if request_type.workload_balancing_enabled and strategy == Strategy.FIRST_AVAILABLE:
            strategy = Strategy.LEAST_LOADED
        return self.select(ctx, strategy, narrowed, conditions, request_context)
