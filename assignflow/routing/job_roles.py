"""Job role directory and optimal-assignee search.

Job roles are organizational capability tags, separate from the coarse
``role`` column.  A user may hold several; at most one is marked
primary.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError, WorkloadUnavailableError
from assignflow.routing.store import RoutingStore
from assignflow.routing.types import CandidateUser, JobRoleAssignment
from assignflow.routing.workload import WorkloadSnapshotProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AssigneeSearchOptions:
    consider_workload: bool = False
    expertise_required: tuple[str, ...] = ()
    geographic_preference: bool = False
    max_assignees: int | None = 1


@dataclass(slots=True)
class AssigneeMatch:
    user: CandidateUser
    job_role_id: str
    is_primary: bool
    workload_score: int = 0


class JobRoleDirectory:
    def __init__(self, store: RoutingStore, workload: WorkloadSnapshotProvider) -> None:
        self.store = store
        self.workload = workload

    def resolve_job_role_ids(self, ctx: OrgContext, names_or_ids: Iterable[str]) -> set[str]:
        """Return ids of active job roles matching *names_or_ids*."""
        return self.store.fetch_job_role_ids(ctx, names_or_ids)

    def role_assignments(self, ctx: OrgContext, job_role_ids: Iterable[str]) -> list[JobRoleAssignment]:
        return self.store.fetch_job_role_assignments(ctx, job_role_ids)

    def user_ids_for_job_roles(self, ctx: OrgContext, names_or_ids: Iterable[str]) -> set[str]:
        """Return ids of users holding any of the named job roles."""
        job_role_ids = self.resolve_job_role_ids(ctx, names_or_ids)
        if not job_role_ids:
            return set()
        return {a.user_id for a in self.role_assignments(ctx, job_role_ids)}

    def find_optimal_matches(
        self,
        ctx: OrgContext,
        request_context: dict[str, Any],
        job_role_ids: Iterable[str],
        pool: Iterable[CandidateUser],
        options: AssigneeSearchOptions | None = None,
    ) -> list[AssigneeMatch]:
        """Rank holders of *job_role_ids* found in *pool*.

        Primary holders always precede non-primary holders; within each
        group the lower workload score wins when ``consider_workload`` is
        set, otherwise directory order is kept.
        """
        options = options or AssigneeSearchOptions()
        role_ids = [jr for jr in dict.fromkeys(job_role_ids) if jr]
        if not role_ids:
            return []

        try:
            assignments = self.role_assignments(ctx, role_ids)
        except RoutingStoreError:
            logger.warning("Job role lookup failed for org=%s", ctx.organization_id, exc_info=True)
            return []

        by_id = {user.id: user for user in pool if user.organization_id == ctx.organization_id}
        matches: dict[str, AssigneeMatch] = {}
        for assignment in assignments:
            user = by_id.get(assignment.user_id)
            if user is None:
                continue
            existing = matches.get(user.id)
            if existing is None:
                matches[user.id] = AssigneeMatch(
                    user=user, job_role_id=assignment.job_role_id, is_primary=assignment.is_primary
                )
            elif assignment.is_primary and not existing.is_primary:
                existing.job_role_id = assignment.job_role_id
                existing.is_primary = True

        ranked = list(matches.values())

        if options.expertise_required:
            wanted = set(options.expertise_required)
            ranked = [m for m in ranked if m.user.expertise_tags & wanted]

        location = request_context.get("location")
        if options.geographic_preference and location:
            local = [m for m in ranked if m.user.location == location]
            if local:
                ranked = local

        if options.consider_workload and ranked:
            try:
                scores = self.workload.scores(ctx, [m.user.id for m in ranked])
            except WorkloadUnavailableError:
                logger.warning("Workload unavailable; ranking without it (org=%s)", ctx.organization_id)
                scores = {}
            for match in ranked:
                match.workload_score = scores.get(match.user.id, 0)

        ranked.sort(key=lambda m: (not m.is_primary, m.workload_score))

        if options.max_assignees is not None and options.max_assignees > 0:
            ranked = ranked[: options.max_assignees]
        return ranked

    def find_optimal_assignees(
        self,
        ctx: OrgContext,
        request_context: dict[str, Any],
        job_role_ids: Iterable[str],
        pool: Iterable[CandidateUser],
        options: AssigneeSearchOptions | None = None,
    ) -> list[CandidateUser]:
        matches = self.find_optimal_matches(ctx, request_context, job_role_ids, pool, options)
        return [m.user for m in matches]

    def held_job_roles(
        self, ctx: OrgContext, names_or_ids: Iterable[str], user_ids: Iterable[str]
    ) -> dict[str, str]:
        """Map each of *user_ids* to the job role it holds among *names_or_ids*.

        A primary holding wins, then the lowest job role id.  Users
        holding none of them are left out.  Store errors propagate.
        """
        wanted = set(user_ids)
        if not wanted:
            return {}
        job_role_ids = self.resolve_job_role_ids(ctx, names_or_ids)
        if not job_role_ids:
            return {}

        best: dict[str, JobRoleAssignment] = {}
        for assignment in self.role_assignments(ctx, job_role_ids):
            if assignment.user_id not in wanted:
                continue
            current = best.get(assignment.user_id)
            key = (not assignment.is_primary, assignment.job_role_id)
            if current is None or key < (not current.is_primary, current.job_role_id):
                best[assignment.user_id] = assignment
        return {user_id: a.job_role_id for user_id, a in best.items()}

    @staticmethod
    def primary_job_role_for(user: CandidateUser) -> str | None:
        """Return the job role to attribute an assignment to.

        The primary job role when one is marked, else the lowest held id.
        """
        if user.primary_job_role:
            return user.primary_job_role
        return min(user.job_roles) if user.job_roles else None
