#!/usr/bin/env python3
"""Seed demo data: one organization with users, job roles, workloads and the demo rule set.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from assignflow.admin.rule_loader import apply_rule_set, load_rule_set
from assignflow.core.context import OrgContext
from assignflow.core.settings import get_settings
from assignflow.db.base import Base
from assignflow.db.repositories import (
    ApproverWorkloadRepository,
    JobRoleRepository,
    OrgUserRepository,
    UserJobRoleRepository,
)

RULE_SET_PATH = "config/rule_sets/demo.yaml"

DEMO_PEOPLE = [
    # (name, role, location, expertise, job role, primary, pending, active)
    ("Avery Finance", "user", "London", [], "Finance Approver", True, 4, 2),
    ("Blake Finance", "user", "Leeds", [], "Finance Approver", False, 0, 1),
    ("Casey Legal", "user", "London", ["contracts"], "Legal Reviewer", True, 1, 0),
    ("Devon Legal", "user", "Leeds", ["litigation"], "Legal Reviewer", True, 0, 0),
    ("Emery Lead", "team_leader", "London", [], "Facilities Coordinator", True, 2, 3),
    ("Finley Manager", "manager", "London", [], None, False, 1, 1),
    ("Gray Admin", "admin", "Leeds", [], None, False, 0, 0),
]


def seed(session: Session) -> str:
    """Insert a demo organization and return its id."""
    org_id = str(uuid4())
    ctx = OrgContext(organization_id=org_id, user_id="seed-script")

    counts = apply_rule_set(session, ctx, load_rule_set(RULE_SET_PATH))
    job_roles = {jr.name: jr.id for jr in JobRoleRepository(session).list_for_org(org_id)}

    users = OrgUserRepository(session)
    holders = UserJobRoleRepository(session)
    workloads = ApproverWorkloadRepository(session)

    for name, role, location, expertise, job_role, primary, pending, active in DEMO_PEOPLE:
        user = users.create(
            organization_id=org_id,
            name=name,
            role=role,
            location=location,
            expertise_tags=expertise,
        )
        if job_role:
            holders.create(
                organization_id=org_id,
                user_id=user.id,
                job_role_id=job_roles[job_role],
                is_primary=primary,
            )
        workloads.create(
            approver_id=user.id,
            organization_id=org_id,
            pending_count=pending,
            active_request_count=active,
        )

    session.commit()
    print(
        f"Seeded org {org_id}: {len(DEMO_PEOPLE)} users, {counts['job_roles']} job roles, "
        f"{counts['request_types']} request types, {counts['rules']} rules"
    )
    return org_id


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
