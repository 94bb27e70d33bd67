"""Database Infrastructure Module.

PostgreSQL audit store using SQLAlchemy with async support.
"""

from .config import DatabaseConfig
from .models import Base, PrescriptionAuditLog
from .repositories import PrescriptionAuditRepository
from .session import close_database, db_session, init_database

__all__ = [
    "DatabaseConfig",
    "Base",
    "PrescriptionAuditLog",
    "PrescriptionAuditRepository",
    "close_database",
    "db_session",
    "init_database",
]
