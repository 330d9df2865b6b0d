"""Escalation planning for requests left pending too long.

A rule's escalation policy has an initial timeout followed by numbered
levels.  Level 1 applies once the initial timeout has elapsed; each
further level applies once the previous level's own timeout has also
elapsed.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from assignflow.core.context import OrgContext
from assignflow.core.errors import InvalidRuleConfiguration
from assignflow.routing.conditions import EscalationLevel, EscalationPolicy, parse_escalation_policy
from assignflow.routing.filters import same_organization
from assignflow.routing.types import CandidateUser

logger = logging.getLogger(__name__)


class EscalationPlanner:
    def current_level(self, policy: EscalationPolicy, hours_pending: float) -> EscalationLevel | None:
        """Return the deepest level reached after *hours_pending*, if any."""
        threshold = float(policy.timeout_hours)
        reached: EscalationLevel | None = None
        for level in sorted(policy.escalation_levels, key=lambda lvl: lvl.level):
            if hours_pending < threshold:
                break
            reached = level
            threshold += level.timeout_hours
        return reached

    def targets_for(
        self,
        ctx: OrgContext,
        policy: EscalationPolicy | dict[str, Any] | None,
        hours_pending: float,
        pool: Iterable[CandidateUser],
    ) -> list[CandidateUser]:
        """Return the pool members a pending request escalates to now.

        An unparseable policy behaves like no policy at all.
        """
        if not isinstance(policy, EscalationPolicy):
            try:
                policy = parse_escalation_policy(policy)
            except InvalidRuleConfiguration as exc:
                logger.warning("Escalation policy rejected (org=%s): %s", ctx.organization_id, exc)
                return []
        if policy is None:
            return []

        level = self.current_level(policy, hours_pending)
        if level is None or not level.roles:
            return []

        roles = set(level.roles)
        targets = [user for user in same_organization(ctx, pool) if user.role in roles]
        logger.info(
            "Escalation level %d reached after %.1fh (org=%s targets=%d)",
            level.level, hours_pending, ctx.organization_id, len(targets),
        )
        return targets
