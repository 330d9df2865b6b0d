"""Canonical names for user roles, rule types and assignment strategies.

Rule rows store these values as plain strings; the constants here are
the closed vocabulary accepted by rule administration and understood by
the routing engine.
"""
from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Coarse user roles (the ``role`` column of the user directory)
# ---------------------------------------------------------------------------

USER_ROLES: tuple[str, ...] = ("user", "team_leader", "manager", "admin", "superadmin")

VALID_USER_ROLES: frozenset[str] = frozenset(USER_ROLES)

DEFAULT_FALLBACK_ROLES: tuple[str, ...] = ("manager", "admin", "superadmin")

# Roles a matched custom predicate narrows to unless the rule overrides it.
ELEVATED_ROLES: tuple[str, ...] = ("admin", "superadmin")


# ---------------------------------------------------------------------------
# Rule types
# ---------------------------------------------------------------------------

class RuleType(StrEnum):
    ROLE_BASED = "role_based"
    JOB_ROLE_BASED = "job_role_based"
    TEAM_HIERARCHY = "team_hierarchy"
    CUSTOM = "custom"


VALID_RULE_TYPES: frozenset[str] = frozenset(rt.value for rt in RuleType)


# ---------------------------------------------------------------------------
# Assignment strategies
# ---------------------------------------------------------------------------

class Strategy(StrEnum):
    FIRST_AVAILABLE = "first_available"
    ROUND_ROBIN = "round_robin"
    LEAST_LOADED = "least_loaded"
    EXPERTISE_BASED = "expertise_based"
    JOB_ROLE_BASED = "job_role_based"
    RANDOM = "random"
    MANUAL = "manual"


# Older rule and request-type rows use these names for the same behaviour.
STRATEGY_ALIASES: dict[str, str] = {
    "load_balanced": Strategy.LEAST_LOADED,
    "least_busy": Strategy.LEAST_LOADED,
    "auto": Strategy.FIRST_AVAILABLE,
}

VALID_STRATEGIES: frozenset[str] = frozenset(
    {s.value for s in Strategy} | set(STRATEGY_ALIASES)
)


def canonical_strategy(name: str | None) -> str:
    """Return the canonical strategy for *name*; unknown names pass through."""
    if not name:
        return Strategy.FIRST_AVAILABLE
    key = name.strip().lower()
    return STRATEGY_ALIASES.get(key, key)


# ---------------------------------------------------------------------------
# Workload scoring
# ---------------------------------------------------------------------------

PENDING_WEIGHT = 2
ACTIVE_WEIGHT = 1


# ---------------------------------------------------------------------------
# Assignment outcome methods
# ---------------------------------------------------------------------------

METHOD_RULE = "rule"
METHOD_FALLBACK = "fallback"
METHOD_DELEGATION = "delegation"
