from __future__ import annotations

from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from assignflow.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: str) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class OrgScopedRepository(BaseRepository[ModelT]):
    """Repository whose reads never cross the organization boundary."""

    def get_for_org(self, organization_id: str, entity_id: str) -> ModelT | None:
        entity = self.get(entity_id)
        if entity is None or entity.organization_id != organization_id:
            return None
        return entity

    def list_for_org(self, organization_id: str, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = (
            select(self.model)
            .where(self.model.organization_id == organization_id)
            .offset(offset)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())


class OrgUserRepository(OrgScopedRepository[models.OrgUser]):
    model = models.OrgUser


class JobRoleRepository(OrgScopedRepository[models.JobRole]):
    model = models.JobRole


class UserJobRoleRepository(OrgScopedRepository[models.UserJobRole]):
    model = models.UserJobRole


class RequestTypeRepository(OrgScopedRepository[models.RequestType]):
    model = models.RequestType


class AssignmentRuleRepository(OrgScopedRepository[models.AssignmentRule]):
    model = models.AssignmentRule

    def list_for_request_type(
        self,
        organization_id: str,
        request_type_id: str,
        *,
        active_only: bool = False,
    ) -> list[models.AssignmentRule]:
        """Return rules for one request type in evaluation order."""
        stmt = select(models.AssignmentRule).where(
            models.AssignmentRule.organization_id == organization_id,
            models.AssignmentRule.request_type_id == request_type_id,
        )
        if active_only:
            stmt = stmt.where(models.AssignmentRule.active.is_(True))
        stmt = stmt.order_by(
            models.AssignmentRule.priority.asc(),
            models.AssignmentRule.created_at.asc(),
            models.AssignmentRule.id.asc(),
        )
        return list(self.db.execute(stmt).scalars().all())


class ApproverWorkloadRepository(OrgScopedRepository[models.ApproverWorkload]):
    model = models.ApproverWorkload
