"""Rule condition and escalation policy schemas.

``AssignmentRule.conditions`` and ``AssignmentRule.escalation_policy``
are stored as JSON.  They are validated here, once, into pydantic
models; the filter chain and strategy selector never inspect raw JSON.

Custom rules use a closed set of tagged predicates instead of free-text
logic.  Rows written by older editors still carry ``custom_logic``
text; it is translated into the same predicates and never evaluated.
"""
from __future__ import annotations

import operator
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from assignflow.core.constants import ELEVATED_ROLES
from assignflow.core.errors import InvalidRuleConfiguration

_COMPARATORS = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "eq": operator.eq,
}

# Legacy free-text rules were keyword-triggered with these fixed thresholds.
LEGACY_URGENT_PRIORITY = "urgent"
LEGACY_AMOUNT_THRESHOLD = 1000.0


class AmountThreshold(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: Literal["amount_threshold"] = "amount_threshold"
    field_name: str = Field(default="amount", alias="field")
    op: Literal["gt", "gte", "lt", "lte", "eq"] = "gt"
    value: float


class PriorityEquals(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["priority_equals"] = "priority_equals"
    value: str


Predicate = Annotated[Union[AmountThreshold, PriorityEquals], Field(discriminator="kind")]


def evaluate_predicate(predicate: AmountThreshold | PriorityEquals, context: dict[str, Any]) -> bool:
    """Return whether *predicate* holds for the request *context*."""
    match predicate:
        case AmountThreshold(field_name=name, op=op, value=threshold):
            raw = context.get(name)
            if raw is None or isinstance(raw, bool):
                return False
            try:
                amount = float(raw)
            except (TypeError, ValueError):
                return False
            return _COMPARATORS[op](amount, threshold)
        case PriorityEquals(value=expected):
            actual = context.get("priority")
            return isinstance(actual, str) and actual.strip().lower() == expected.strip().lower()
    return False


def translate_custom_logic(text: str) -> list[AmountThreshold | PriorityEquals]:
    """Map legacy ``custom_logic`` text onto the closed predicate set."""
    lowered = text.lower()
    predicates: list[AmountThreshold | PriorityEquals] = []
    if "priority" in lowered:
        predicates.append(PriorityEquals(value=LEGACY_URGENT_PRIORITY))
    if "amount" in lowered:
        predicates.append(AmountThreshold(field_name="amount", op="gt", value=LEGACY_AMOUNT_THRESHOLD))
    return predicates


class RuleConditions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    roles: list[str] | None = None
    job_roles: list[str] | None = None
    team_ids: list[str] | None = None
    expertise_required: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("expertise_required", "expertiseRequired"),
    )
    predicates: list[Predicate] | None = None
    restrict_to_roles: list[str] = Field(default_factory=lambda: list(ELEVATED_ROLES))
    custom_logic: str | None = None

    @model_validator(mode="after")
    def _translate_legacy_logic(self) -> RuleConditions:
        if self.predicates is None and self.custom_logic:
            self.predicates = translate_custom_logic(self.custom_logic)
        return self


class EscalationLevel(BaseModel):
    level: int = Field(ge=1)
    roles: list[str] = Field(default_factory=list)
    timeout_hours: int = Field(default=24, ge=0)


class EscalationPolicy(BaseModel):
    timeout_hours: int = Field(default=48, ge=0)
    escalation_levels: list[EscalationLevel] = Field(default_factory=list)


def parse_conditions(raw: Any) -> RuleConditions:
    """Validate stored rule conditions.

    ``None`` means "no conditions".  Anything that does not validate
    raises ``InvalidRuleConfiguration``.
    """
    if raw is None:
        return RuleConditions()
    if not isinstance(raw, dict):
        raise InvalidRuleConfiguration(f"conditions must be an object, got {type(raw).__name__}")
    try:
        return RuleConditions.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRuleConfiguration(f"invalid rule conditions: {exc.error_count()} error(s)") from exc


def parse_escalation_policy(raw: Any) -> EscalationPolicy | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidRuleConfiguration(f"escalation_policy must be an object, got {type(raw).__name__}")
    try:
        return EscalationPolicy.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRuleConfiguration(f"invalid escalation policy: {exc.error_count()} error(s)") from exc
