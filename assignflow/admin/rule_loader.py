"""Rule-set YAML loader.

Loads request types and their assignment rules from
``config/rule_sets/*.yaml`` and applies them to an organization through
``RuleManager``, so fixture rules pass the same validation as rules
created from the admin API.

Document shape::

    job_roles: [Finance Approver, Legal Reviewer]
    request_types:
      - name: Expense Claim
        default_job_roles: [Finance Approver]
        workload_balancing_enabled: true
        rules:
          - name: Finance approvers
            rule_type: job_role_based
            strategy: least_loaded
            conditions: {job_roles: [Finance Approver]}
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy.orm import Session

from assignflow.admin.rules import RuleManager, validate_rule_definition
from assignflow.core.context import OrgContext
from assignflow.db.repositories import JobRoleRepository, RequestTypeRepository

logger = logging.getLogger(__name__)

_REQUIRED_RULE_FIELDS: frozenset[str] = frozenset({"name", "rule_type"})

_REQUEST_TYPE_FIELDS: frozenset[str] = frozenset({
    "category",
    "default_job_roles",
    "selected_user_ids",
    "assignment_strategy",
    "expertise_tags",
    "geographic_scope",
    "workload_balancing_enabled",
})


@dataclass
class RuleDefinition:
    name: str
    rule_type: str
    strategy: str = "first_available"
    conditions: dict[str, Any] = field(default_factory=dict)
    escalation_policy: dict[str, Any] | None = None
    active: bool = True


@dataclass
class RequestTypeDefinition:
    name: str
    settings: dict[str, Any] = field(default_factory=dict)
    rules: list[RuleDefinition] = field(default_factory=list)


@dataclass
class RuleSet:
    source: str
    job_roles: list[str] = field(default_factory=list)
    request_types: list[RequestTypeDefinition] = field(default_factory=list)


def _parse_rule(path: Path, data: Any) -> RuleDefinition:
    if not isinstance(data, dict):
        raise ValueError(f"{path}: each rule must be a mapping")
    missing = _REQUIRED_RULE_FIELDS - data.keys()
    if missing:
        raise ValueError(f"{path}: rule missing required fields: {sorted(missing)}")

    rule = RuleDefinition(
        name=str(data["name"]),
        rule_type=str(data["rule_type"]),
        strategy=str(data.get("strategy", "first_available")),
        conditions=data.get("conditions") or {},
        escalation_policy=data.get("escalation_policy"),
        active=bool(data.get("active", True)),
    )
    try:
        validate_rule_definition(rule.rule_type, rule.strategy, rule.conditions, rule.escalation_policy)
    except ValueError as exc:
        raise ValueError(f"{path}: rule {rule.name!r}: {exc}") from exc
    return rule


def load_rule_set(path: str | Path) -> RuleSet:
    """Load and validate one rule-set YAML file.

    Raises
    ------
    ValueError
        If the document is not a mapping or any rule fails validation.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a YAML mapping, got {type(data).__name__}")

    request_types: list[RequestTypeDefinition] = []
    for entry in data.get("request_types") or []:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ValueError(f"{path}: each request type needs a name")
        request_types.append(
            RequestTypeDefinition(
                name=str(entry["name"]),
                settings={k: v for k, v in entry.items() if k in _REQUEST_TYPE_FIELDS},
                rules=[_parse_rule(path, rule) for rule in entry.get("rules") or []],
            )
        )

    return RuleSet(
        source=str(path),
        job_roles=[str(name) for name in data.get("job_roles") or []],
        request_types=request_types,
    )


def load_all_rule_sets(directory: str | Path = "config/rule_sets") -> list[RuleSet]:
    """Load all ``*.yaml`` rule-set files from *directory*, sorted by name."""
    directory = Path(directory)
    rule_sets: list[RuleSet] = []
    for path in sorted(directory.iterdir()):
        if path.suffix not in (".yaml", ".yml"):
            continue
        rule_sets.append(load_rule_set(path))
    return rule_sets


def apply_rule_set(db_session: Session, ctx: OrgContext, rule_set: RuleSet) -> dict[str, int]:
    """Create the rule set's job roles, request types and rules for ``ctx``.

    Job roles that already exist by name are reused.  Returns counts of
    created rows.  Flushes but does not commit.
    """
    job_roles = JobRoleRepository(db_session)
    request_types = RequestTypeRepository(db_session)
    manager = RuleManager(db_session)

    existing = {jr.name for jr in job_roles.list_for_org(ctx.organization_id, limit=10_000)}
    created = {"job_roles": 0, "request_types": 0, "rules": 0}

    for name in rule_set.job_roles:
        if name in existing:
            continue
        job_roles.create(organization_id=ctx.organization_id, name=name)
        existing.add(name)
        created["job_roles"] += 1

    for definition in rule_set.request_types:
        request_type = request_types.create(
            organization_id=ctx.organization_id, name=definition.name, **definition.settings
        )
        created["request_types"] += 1
        for rule in definition.rules:
            manager.create_rule(
                ctx,
                request_type.id,
                name=rule.name,
                rule_type=rule.rule_type,
                conditions=rule.conditions,
                strategy=rule.strategy,
                escalation_policy=rule.escalation_policy,
                active=rule.active,
            )
            created["rules"] += 1

    logger.info(
        "Applied rule set %s to org=%s: %d job role(s), %d request type(s), %d rule(s)",
        rule_set.source, ctx.organization_id,
        created["job_roles"], created["request_types"], created["rules"],
    )
    return created
