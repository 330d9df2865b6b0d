"""Append-only audit logger.

Provides ``record_event()`` to persist ``AuditEvent`` rows.
All writes are immutable; ``immutable=True`` always.

Safety: ``detail`` payloads (which may contain delegation reasons) are
never logged; only event_type, actor and target are.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from assignflow.audit.events import TARGETED_EVENT_TYPES, VALID_EVENT_TYPES
from assignflow.db.models import AuditEvent

logger = logging.getLogger(__name__)


def record_event(
    db_session: Session,
    organization_id: str,
    event_type: str,
    actor: str,
    target_id: str | None = None,
    detail: dict | None = None,
) -> AuditEvent:
    """Create and persist an immutable ``AuditEvent``.

    Raises ``ValueError`` for invalid inputs.  Flushes but does **not**
    commit; the caller controls the transaction boundary.
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(
            f"Invalid event_type {event_type!r}; "
            f"must be one of {sorted(VALID_EVENT_TYPES)}"
        )

    if not actor or not actor.strip():
        raise ValueError("actor must be a non-empty string")

    if not organization_id:
        raise ValueError("organization_id is required")

    if event_type in TARGETED_EVENT_TYPES and not target_id:
        raise ValueError(f"target_id is required for {event_type} events")

    event = AuditEvent(
        organization_id=organization_id,
        event_type=event_type,
        actor=actor,
        target_id=target_id,
        detail=detail,
        immutable=True,
    )
    db_session.add(event)
    db_session.flush()

    logger.info("Audit event recorded: type=%s actor=%s target=%s", event_type, actor, target_id)
    return event


def get_target_history(
    db_session: Session,
    organization_id: str,
    target_id: str,
) -> list[AuditEvent]:
    """Return all ``AuditEvent`` rows for *target_id*, ordered by timestamp."""
    stmt = (
        select(AuditEvent)
        .where(
            AuditEvent.organization_id == organization_id,
            AuditEvent.target_id == target_id,
        )
        .order_by(AuditEvent.timestamp.asc())
    )
    return list(db_session.execute(stmt).scalars().all())


def get_events_by_type(
    db_session: Session,
    organization_id: str,
    event_type: str,
) -> list[AuditEvent]:
    """Return all ``AuditEvent`` rows of *event_type*, ordered by timestamp."""
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(
            f"Invalid event_type {event_type!r}; "
            f"must be one of {sorted(VALID_EVENT_TYPES)}"
        )
    stmt = (
        select(AuditEvent)
        .where(
            AuditEvent.organization_id == organization_id,
            AuditEvent.event_type == event_type,
        )
        .order_by(AuditEvent.timestamp.asc())
    )
    return list(db_session.execute(stmt).scalars().all())
