"""PostgreSQL Repositories.

Repository pattern for the prescription audit trail, providing a clean
abstraction over SQLAlchemy.
"""

import logging
from typing import Generic, Optional, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.prescription_safety_models import AuditEvent

from .models import Base, PrescriptionAuditLog

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Base repository with common read/create operations."""

    def __init__(self, session: AsyncSession, model: type[T]):
        self.session = session
        self.model = model

    async def get_by_id(self, id: UUID) -> Optional[T]:
        """Get entity by ID."""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, entity: T) -> T:
        """Create a new entity."""
        self.session.add(entity)
        await self.session.flush()
        return entity


class PrescriptionAuditRepository(BaseRepository[PrescriptionAuditLog]):
    """Repository for prescription authorization audit records.

    Audit records are append-only; there is no update or delete.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, PrescriptionAuditLog)

    async def record_event(self, event: AuditEvent) -> PrescriptionAuditLog:
        """Store an audit event, ignoring re-deliveries of the same event."""
        event_id = UUID(event.event_id)
        existing = await self.get_by_id(event_id)
        if existing is not None:
            logger.debug(f"Audit event {event.event_id} already recorded")
            return existing

        result = event.evaluation_result
        log = PrescriptionAuditLog(
            id=event_id,
            provider_id=event.provider_id,
            patient_id=event.patient_id,
            medication_name=event.medication_name,
            allowed=event.allowed,
            override_given=event.override_given,
            reason=event.reason,
            recommended_action=result.recommended_action.value,
            has_absolute_contraindication=result.has_absolute_contraindication,
            evaluation_result=result.to_dict(),
            catalog_version=result.catalog_version,
            occurred_at=event.timestamp,
        )
        return await self.create(log)
