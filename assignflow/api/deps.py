"""FastAPI dependency injection: database sessions, caller context and service factories."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from assignflow.admin.rules import RuleManager
from assignflow.core.context import OrgContext
from assignflow.db.session import get_session_factory
from assignflow.routing.delegation import DelegationLedger
from assignflow.routing.service import AssignmentService


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_org_context(
    x_organization_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> OrgContext:
    """Build the caller's ``OrgContext`` from the request headers."""
    if not x_organization_id or not x_organization_id.strip():
        raise HTTPException(status_code=400, detail="X-Organization-Id header is required")
    return OrgContext(organization_id=x_organization_id.strip(), user_id=x_user_id or None)


def get_rule_manager(db: Session = Depends(get_db)) -> RuleManager:
    return RuleManager(db)


def get_delegation_ledger(db: Session = Depends(get_db)) -> DelegationLedger:
    return DelegationLedger(db)


def get_assignment_service(db: Session = Depends(get_db)) -> AssignmentService:
    return AssignmentService(db)
