"""PostgreSQL audit sink.

Writes prescription audit events through PrescriptionAuditRepository, one
transaction per event. Re-delivered events are ignored by the repository,
so publisher retries never duplicate a record.
"""

import logging
from typing import Callable, Optional

from application.services.audit_publisher import AuditSink, AuditWriteFailure
from domain.prescription_safety_models import AuditEvent
from infrastructure.database.repositories import PrescriptionAuditRepository
from infrastructure.database.session import db_session

logger = logging.getLogger(__name__)


class SqlAuditSink(AuditSink):
    """Audit sink backed by the PostgreSQL audit table."""

    def __init__(self, session_factory: Optional[Callable] = None):
        """
        Args:
            session_factory: Callable returning an async session context
                manager (defaults to db_session)
        """
        self.session_factory = session_factory or db_session

    async def write(self, event: AuditEvent) -> None:
        try:
            async with self.session_factory() as session:
                await PrescriptionAuditRepository(session).record_event(event)
        except Exception as e:
            raise AuditWriteFailure(f"Could not store audit event {event.event_id}: {e}") from e
        logger.debug(f"Stored audit event {event.event_id}")
