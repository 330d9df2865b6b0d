"""Assignment orchestration for one submitted request.

Runs rule evaluation, applies delegation overrides and records one
``AssignmentOutcome`` per final assignee.  Nothing here raises into the
submission flow: read failures degrade, write failures are logged.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError, WorkloadUnavailableError
from assignflow.db.models import AssignmentOutcome
from assignflow.routing.delegation import DelegationLedger
from assignflow.routing.evaluator import RulePriorityEvaluator
from assignflow.routing.job_roles import JobRoleDirectory
from assignflow.routing.types import CandidateUser, RoutingDecision
from assignflow.routing.workload import WorkloadSnapshotProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AssignmentResult:
    request_id: str | None
    assignees: list[CandidateUser]
    method: str
    rule_id: str | None = None
    rule_name: str | None = None
    strategy: str | None = None
    # delegate id -> original approver id
    delegated_from: dict[str, str] = field(default_factory=dict)
    outcomes_recorded: int = 0

    @property
    def approver_ids(self) -> list[str]:
        return [user.id for user in self.assignees]


class AssignmentService:
    def __init__(
        self,
        db_session: Session,
        evaluator: RulePriorityEvaluator | None = None,
        ledger: DelegationLedger | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.db = db_session
        self.evaluator = evaluator or RulePriorityEvaluator.for_session(db_session, rng=rng)
        self.store = self.evaluator.store
        self.ledger = ledger or DelegationLedger(db_session, self.store)
        self.workload = WorkloadSnapshotProvider(self.store)

    def assign_request(
        self,
        ctx: OrgContext,
        request_id: str | None,
        request_type_id: str,
        request_data: dict[str, Any] | None = None,
        candidate_pool: Iterable[CandidateUser] | None = None,
        *,
        record: bool = True,
        now: datetime | None = None,
    ) -> AssignmentResult:
        """Route *request_id* and return who must act on it.

        With ``record=False`` nothing is written (routing preview).  An
        empty assignee list is returned as-is; no assignee is invented.
        """
        now = now or datetime.now(timezone.utc)
        pool = self._pool(ctx, candidate_pool)
        decision = self.evaluator.evaluate_with_trace(ctx, request_type_id, request_data or {}, pool)

        assignees, delegated_from = self._apply_delegations(ctx, request_id, decision, pool, now)
        result = AssignmentResult(
            request_id=request_id,
            assignees=assignees,
            method=decision.method,
            rule_id=decision.rule_id,
            rule_name=decision.rule_name,
            strategy=decision.strategy,
            delegated_from=delegated_from,
        )

        if not assignees:
            logger.warning(
                "Request %s (type %s) has no approver in org=%s",
                request_id, request_type_id, ctx.organization_id,
            )
            return result

        if record:
            result.outcomes_recorded = self._record_outcomes(ctx, request_id, decision, assignees, now)
        return result

    def _pool(self, ctx: OrgContext, candidate_pool: Iterable[CandidateUser] | None) -> list[CandidateUser]:
        if candidate_pool is not None:
            return list(candidate_pool)
        try:
            return self.store.load_candidate_pool(ctx)
        except RoutingStoreError:
            logger.warning("User directory unavailable (org=%s)", ctx.organization_id, exc_info=True)
            return []

    def _apply_delegations(
        self,
        ctx: OrgContext,
        request_id: str | None,
        decision: RoutingDecision,
        pool: list[CandidateUser],
        now: datetime,
    ) -> tuple[list[CandidateUser], dict[str, str]]:
        by_id = {user.id: user for user in pool if user.organization_id == ctx.organization_id}
        final: dict[str, CandidateUser] = {}
        delegated_from: dict[str, str] = {}

        for user in decision.candidates:
            acting_id = self.ledger.resolve_acting_approver(ctx, request_id, user.id, now=now)
            acting = user
            if acting_id != user.id:
                delegate = by_id.get(acting_id)
                if delegate is None:
                    # Inactive or foreign delegate: the original approver keeps the request.
                    logger.warning("Delegate %s of approver %s is not eligible; ignoring", acting_id, user.id)
                else:
                    acting = delegate
                    delegated_from[delegate.id] = user.id
            final.setdefault(acting.id, acting)

        return list(final.values()), delegated_from

    def _record_outcomes(
        self,
        ctx: OrgContext,
        request_id: str | None,
        decision: RoutingDecision,
        assignees: list[CandidateUser],
        now: datetime,
    ) -> int:
        try:
            scores = self.workload.scores(ctx, [user.id for user in assignees])
        except WorkloadUnavailableError:
            scores = {}

        try:
            with self.db.begin_nested():
                for user in assignees:
                    self.db.add(
                        AssignmentOutcome(
                            organization_id=ctx.organization_id,
                            request_id=request_id,
                            rule_id=decision.rule_id,
                            approver_id=user.id,
                            job_role_id=decision.job_roles.get(user.id) or JobRoleDirectory.primary_job_role_for(user),
                            assignment_method=decision.method,
                            assignment_score=float(scores[user.id]) if user.id in scores else None,
                            created_at=now,
                        )
                    )
                self.db.flush()
        except SQLAlchemyError:
            logger.error("Failed to record assignment outcome for request %s", request_id, exc_info=True)
            return 0

        logger.info(
            "Request %s assigned to %d approver(s) via %s",
            request_id, len(assignees), decision.method,
        )
        return len(assignees)
