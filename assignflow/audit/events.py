"""Event type constants.

Canonical event types for the append-only audit trail.  Assignment
outcomes themselves are analytics rows (``assignment_outcomes``); the
audit trail covers configuration and authority changes.
"""
from __future__ import annotations

EVENT_RULE_CREATED = "rule_created"
EVENT_RULE_UPDATED = "rule_updated"
EVENT_RULE_DELETED = "rule_deleted"
EVENT_RULES_REORDERED = "rules_reordered"
EVENT_DELEGATION_CREATED = "delegation_created"
EVENT_DELEGATION_REVOKED = "delegation_revoked"
EVENT_DELEGATION_EXPIRED = "delegation_expired"

VALID_EVENT_TYPES: frozenset[str] = frozenset({
    EVENT_RULE_CREATED,
    EVENT_RULE_UPDATED,
    EVENT_RULE_DELETED,
    EVENT_RULES_REORDERED,
    EVENT_DELEGATION_CREATED,
    EVENT_DELEGATION_REVOKED,
    EVENT_DELEGATION_EXPIRED,
})

# Events that must name the row they act on.
TARGETED_EVENT_TYPES: frozenset[str] = frozenset({
    EVENT_RULE_CREATED,
    EVENT_RULE_UPDATED,
    EVENT_RULE_DELETED,
    EVENT_DELEGATION_CREATED,
    EVENT_DELEGATION_REVOKED,
    EVENT_DELEGATION_EXPIRED,
})
