"""Per-call organization context.

Every routing, delegation and administration entry point receives an
``OrgContext`` explicitly.  The organization id is the isolation
boundary: no operation may read or return rows from another
organization.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class OrgContext:
    organization_id: str
    user_id: str | None = None

    def __post_init__(self) -> None:
        if not self.organization_id or not self.organization_id.strip():
            raise ValueError("organization_id must be a non-empty string")

    @property
    def actor(self) -> str:
        """Audit actor for writes made on behalf of this context."""
        return self.user_id or "system"
