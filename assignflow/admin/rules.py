"""Assignment rule administration.

CRUD and reordering for an organization's assignment rules.  Rule type,
strategy, conditions and escalation policy are validated before any
write so the routing engine only ever sees rules it understands.  Every
change is recorded in the audit log.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from assignflow.audit.audit_log import record_event
from assignflow.audit.events import (
    EVENT_RULE_CREATED,
    EVENT_RULE_DELETED,
    EVENT_RULE_UPDATED,
    EVENT_RULES_REORDERED,
)
from assignflow.core.constants import VALID_RULE_TYPES, VALID_STRATEGIES, RuleType
from assignflow.core.context import OrgContext
from assignflow.core.errors import InvalidRuleConfiguration
from assignflow.db.models import AssignmentRule, RequestType
from assignflow.db.repositories import AssignmentRuleRepository
from assignflow.routing.conditions import parse_conditions, parse_escalation_policy

_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "name",
    "rule_type",
    "conditions",
    "strategy",
    "escalation_policy",
    "active",
    "priority",
})

# Sub-field a rule type needs before it can ever match anyone.
_REQUIRED_CONDITION: dict[str, str] = {
    RuleType.ROLE_BASED: "roles",
    RuleType.JOB_ROLE_BASED: "job_roles",
    RuleType.TEAM_HIERARCHY: "team_ids",
}


def validate_rule_definition(
    rule_type: str,
    strategy: str,
    conditions: dict[str, Any] | None,
    escalation_policy: dict[str, Any] | None = None,
) -> None:
    """Raise ``ValueError`` if the rule could not be evaluated."""
    if rule_type not in VALID_RULE_TYPES:
        raise ValueError(f"Invalid rule_type {rule_type!r}; must be one of {sorted(VALID_RULE_TYPES)}")
    if strategy not in VALID_STRATEGIES:
        raise ValueError(f"Invalid strategy {strategy!r}; must be one of {sorted(VALID_STRATEGIES)}")

    try:
        parsed = parse_conditions(conditions)
        parse_escalation_policy(escalation_policy)
    except InvalidRuleConfiguration as exc:
        raise ValueError(str(exc)) from exc

    required = _REQUIRED_CONDITION.get(rule_type)
    if required and not getattr(parsed, required):
        raise ValueError(f"{rule_type} rules require a non-empty conditions.{required}")
    if rule_type == RuleType.CUSTOM and not parsed.predicates:
        raise ValueError("custom rules require at least one predicate")


class RuleManager:
    """Create, edit, order and retire assignment rules for one organization."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.rules = AssignmentRuleRepository(db_session)

    # -- read ---------------------------------------------------------------

    def list_rules(
        self, ctx: OrgContext, request_type_id: str, *, active_only: bool = False
    ) -> list[AssignmentRule]:
        """Return rules for *request_type_id* in evaluation order."""
        return self.rules.list_for_request_type(ctx.organization_id, request_type_id, active_only=active_only)

    def get_rule(self, ctx: OrgContext, rule_id: str) -> AssignmentRule:
        rule = self.rules.get(rule_id)
        if rule is None:
            raise KeyError(f"AssignmentRule {rule_id} not found")
        if rule.organization_id != ctx.organization_id:
            raise PermissionError(f"AssignmentRule {rule_id} belongs to another organization")
        return rule

    # -- write --------------------------------------------------------------

    def create_rule(
        self,
        ctx: OrgContext,
        request_type_id: str,
        name: str,
        rule_type: str,
        conditions: dict[str, Any] | None = None,
        strategy: str = "first_available",
        escalation_policy: dict[str, Any] | None = None,
        active: bool = True,
        priority: int | None = None,
    ) -> AssignmentRule:
        """Validate and insert one rule.

        Without an explicit *priority* the rule is appended after the
        request type's existing rules.
        """
        if not name or not name.strip():
            raise ValueError("name must be a non-empty string")
        self._request_type(ctx, request_type_id)
        validate_rule_definition(rule_type, strategy, conditions, escalation_policy)

        if priority is None:
            priority = self._next_priority(ctx, request_type_id)
        elif priority < 0:
            raise ValueError("priority must be >= 0")

        rule = AssignmentRule(
            organization_id=ctx.organization_id,
            request_type_id=request_type_id,
            name=name.strip(),
            rule_type=rule_type,
            conditions=conditions or {},
            strategy=strategy,
            escalation_policy=escalation_policy,
            active=active,
            priority=priority,
            created_by=ctx.user_id,
        )
        self.db.add(rule)
        self.db.flush()

        record_event(
            self.db,
            ctx.organization_id,
            EVENT_RULE_CREATED,
            actor=ctx.actor,
            target_id=rule.id,
            detail={"request_type_id": request_type_id, "rule_type": rule_type, "priority": priority},
        )
        return rule

    def update_rule(self, ctx: OrgContext, rule_id: str, **changes: Any) -> AssignmentRule:
        """Apply *changes* to one rule after re-validating the result."""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        rule = self.get_rule(ctx, rule_id)
        merged = {
            "rule_type": changes.get("rule_type", rule.rule_type),
            "strategy": changes.get("strategy", rule.strategy),
            "conditions": changes.get("conditions", rule.conditions),
            "escalation_policy": changes.get("escalation_policy", rule.escalation_policy),
        }
        validate_rule_definition(**merged)
        if "name" in changes and (not changes["name"] or not str(changes["name"]).strip()):
            raise ValueError("name must be a non-empty string")
        if "priority" in changes and (changes["priority"] is None or changes["priority"] < 0):
            raise ValueError("priority must be >= 0")
        if "active" in changes and not isinstance(changes["active"], bool):
            raise ValueError("active must be true or false")

        for key, value in changes.items():
            setattr(rule, key, value.strip() if key == "name" else value)
        rule.updated_at = datetime.now(timezone.utc)
        self.db.flush()

        record_event(
            self.db,
            ctx.organization_id,
            EVENT_RULE_UPDATED,
            actor=ctx.actor,
            target_id=rule.id,
            detail={"fields": sorted(changes)},
        )
        return rule

    def set_active(self, ctx: OrgContext, rule_id: str, active: bool) -> AssignmentRule:
        return self.update_rule(ctx, rule_id, active=active)

    def delete_rule(self, ctx: OrgContext, rule_id: str) -> None:
        rule = self.get_rule(ctx, rule_id)
        request_type_id = rule.request_type_id
        self.db.delete(rule)
        self.db.flush()
        record_event(
            self.db,
            ctx.organization_id,
            EVENT_RULE_DELETED,
            actor=ctx.actor,
            target_id=rule_id,
            detail={"request_type_id": request_type_id},
        )

    def reorder_rules(self, ctx: OrgContext, request_type_id: str, ordered_ids: list[str]) -> list[AssignmentRule]:
        """Rewrite priorities so *ordered_ids* evaluate in the given order.

        *ordered_ids* must name every rule of the request type exactly
        once.  Priorities become ``0..n-1``.
        """
        rules = self.list_rules(ctx, request_type_id)
        by_id = {rule.id: rule for rule in rules}
        if len(ordered_ids) != len(set(ordered_ids)):
            raise ValueError("ordered_ids contains duplicates")
        if set(ordered_ids) != set(by_id):
            raise ValueError("ordered_ids must list every rule of the request type exactly once")

        now = datetime.now(timezone.utc)
        for index, rule_id in enumerate(ordered_ids):
            rule = by_id[rule_id]
            if rule.priority != index:
                rule.priority = index
                rule.updated_at = now
        self.db.flush()

        record_event(
            self.db,
            ctx.organization_id,
            EVENT_RULES_REORDERED,
            actor=ctx.actor,
            detail={"request_type_id": request_type_id, "order": list(ordered_ids)},
        )
        return [by_id[rule_id] for rule_id in ordered_ids]

    # -- helpers ------------------------------------------------------------

    def _request_type(self, ctx: OrgContext, request_type_id: str) -> RequestType:
        request_type = self.db.get(RequestType, request_type_id)
        if request_type is None:
            raise KeyError(f"RequestType {request_type_id} not found")
        if request_type.organization_id != ctx.organization_id:
            raise PermissionError(f"RequestType {request_type_id} belongs to another organization")
        return request_type

    def _next_priority(self, ctx: OrgContext, request_type_id: str) -> int:
        stmt = select(func.max(AssignmentRule.priority)).where(
            AssignmentRule.organization_id == ctx.organization_id,
            AssignmentRule.request_type_id == request_type_id,
        )
        current = self.db.execute(stmt).scalar_one_or_none()
        return 0 if current is None else current + 1
