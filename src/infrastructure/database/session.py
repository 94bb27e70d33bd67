"""Database Session Management.

Async engine and session handling for the audit store.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import DatabaseConfig
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(
    config: Optional[DatabaseConfig] = None,
    create_tables: bool = False,
) -> AsyncEngine:
    """Initialize the audit database connection.

    Args:
        config: Database configuration (from environment if not provided)
        create_tables: Whether to create the audit tables if missing
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    config = config or DatabaseConfig.from_env()
    logger.info(f"Connecting audit store to {config.host}:{config.port}/{config.database}")

    _engine = create_async_engine(
        config.get_url(),
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        echo=config.echo,
    )
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    if create_tables:
        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Audit tables created")

    return _engine


async def close_database() -> None:
    """Dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Audit store connection closed")


@asynccontextmanager
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Transactional session: commits on success, rolls back on error.

    Usage:
        async with db_session() as session:
            await PrescriptionAuditRepository(session).record_event(event)
    """
    if _session_factory is None:
        await init_database()

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
