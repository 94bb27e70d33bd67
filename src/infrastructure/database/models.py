"""SQLAlchemy Models for PostgreSQL.

Defines ORM models for the prescription safety audit trail.
"""

from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ============================================
# Prescription Audit Trail
# ============================================

class PrescriptionAuditLog(Base):
    """One prescription authorization attempt, allowed or denied."""

    __tablename__ = "prescription_audit_logs"

    # Event id doubles as the idempotency key for at-least-once delivery
    id = Column(UUID(as_uuid=True), primary_key=True)

    # Who / what
    provider_id = Column(String(255), nullable=False, index=True)
    patient_id = Column(String(255), index=True)
    medication_name = Column(String(255))

    # Decision
    allowed = Column(Boolean, nullable=False)
    override_given = Column(Boolean, nullable=False, default=False)
    reason = Column(Text)
    recommended_action = Column(String(50), nullable=False, index=True)
    has_absolute_contraindication = Column(Boolean, nullable=False, default=False)

    # Full evaluation snapshot
    evaluation_result = Column(JSONB, nullable=False)
    catalog_version = Column(String(100))

    # Timestamps
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_prescription_audit_patient_time", "patient_id", "occurred_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the audit record JSON shape."""
        return {
            "eventId": str(self.id),
            "timestamp": self.occurred_at.isoformat() if self.occurred_at else None,
            "providerId": self.provider_id,
            "patientId": self.patient_id,
            "medicationName": self.medication_name,
            "evaluationResult": self.evaluation_result,
            "overrideGiven": self.override_given,
            "allowed": self.allowed,
            "reason": self.reason,
        }
