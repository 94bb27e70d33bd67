"""Dependency wiring for the Prescription Safety API.

Builds the catalog registry, engine, audit publisher and authorization gate
from PrescriptionSafetyConfig and hands them to the router.
"""

import logging
from typing import Optional

from application.rules import (
    AuthorizationGate,
    AuthorizationGateConfig,
    PrescriptionSafetyEngine,
    RuleCatalogRegistry,
    SafetyEngineConfig,
    build_default_catalog,
    load_catalog,
)
from application.services.audit_publisher import (
    AuditPublisher,
    AuditSink,
    InMemoryAuditSink,
    JsonlAuditSink,
)
from config.safety_config import AuditSinkType, PrescriptionSafetyConfig, get_safety_config
from domain.prescription_safety_models import RuleCatalogError

from .prescription_safety_router import set_safety_services

logger = logging.getLogger(__name__)

# Global instances to hold state
_registry: Optional[RuleCatalogRegistry] = None
_engine: Optional[PrescriptionSafetyEngine] = None
_gate: Optional[AuthorizationGate] = None
_audit_publisher: Optional[AuditPublisher] = None
_uses_database = False


def build_registry(config: PrescriptionSafetyConfig) -> RuleCatalogRegistry:
    """Registry seeded with the configured catalog, or the built-in one.

    A configured catalog that cannot be read leaves the registry empty, so
    evaluation stays unavailable rather than running on the wrong rules.
    """
    if not config.catalog.path:
        logger.info("No catalog path configured; using built-in rule catalog")
        return RuleCatalogRegistry(build_default_catalog())

    try:
        catalog = load_catalog(config.catalog.path)
    except RuleCatalogError as e:
        logger.error(f"Rule catalog unavailable, evaluation disabled: {e}")
        return RuleCatalogRegistry()
    return RuleCatalogRegistry(catalog)


async def build_audit_sink(config: PrescriptionSafetyConfig) -> AuditSink:
    """Audit sink for the configured backend."""
    global _uses_database
    sink_type = config.audit.sink

    if sink_type == AuditSinkType.JSONL:
        logger.info(f"Audit events go to {config.audit.jsonl_path}")
        return JsonlAuditSink(config.audit.jsonl_path)

    if sink_type == AuditSinkType.POSTGRES:
        from infrastructure.database import init_database
        from infrastructure.sql_audit_sink import SqlAuditSink

        try:
            await init_database(create_tables=True)
        except Exception as e:
            # The publisher retries and dead-letters until the store is back
            logger.error(f"Audit store not reachable at startup: {e}")
        _uses_database = True
        return SqlAuditSink()

    logger.warning("Audit events are kept in memory only")
    return InMemoryAuditSink()


async def initialize_prescription_safety(
    config: Optional[PrescriptionSafetyConfig] = None,
) -> PrescriptionSafetyEngine:
    """Create and register all prescription safety services.

    Args:
        config: Configuration (global config if not provided)

    Returns:
        The initialized engine
    """
    global _registry, _engine, _gate, _audit_publisher

    config = config or get_safety_config()

    _registry = build_registry(config)
    _engine = PrescriptionSafetyEngine(
        config=SafetyEngineConfig(
            enable_dosage_overlap_check=config.engine.enable_dosage_overlap_check,
        ),
        registry=_registry,
    )

    sink = await build_audit_sink(config)
    _audit_publisher = AuditPublisher(
        sink,
        max_attempts=config.audit.max_attempts,
        retry_delay=config.audit.retry_delay,
        max_retry_delay=config.audit.max_retry_delay,
        backlog_limit=config.audit.backlog_limit,
    )
    await _audit_publisher.start()

    _gate = AuthorizationGate(
        config=AuthorizationGateConfig(
            require_general_acknowledgment=config.authorization.require_general_acknowledgment,
        ),
        audit_publisher=_audit_publisher,
    )

    set_safety_services(
        _engine, _gate, _registry,
        catalog_path=config.catalog.path,
        catalog_dir=config.catalog.reload_dir,
    )
    logger.info("✅ Prescription safety services initialized")
    return _engine


async def shutdown_prescription_safety() -> None:
    """Drain the audit publisher and release services."""
    global _registry, _engine, _gate, _audit_publisher, _uses_database

    if _audit_publisher is not None:
        await _audit_publisher.stop(drain=True)
        stats = _audit_publisher.get_statistics()
        if stats["pending"] or stats["dead_letters"]:
            logger.error(
                f"Shutdown with undelivered audit events: {stats['pending']} pending, "
                f"{stats['dead_letters']} dead-lettered"
            )

    if _uses_database:
        from infrastructure.database import close_database
        await close_database()

    set_safety_services(None, None, None)
    _registry = _engine = _gate = _audit_publisher = None
    _uses_database = False


def get_audit_publisher() -> Optional[AuditPublisher]:
    """Current audit publisher (None before startup)."""
    return _audit_publisher


def get_safety_engine() -> Optional[PrescriptionSafetyEngine]:
    """Current safety engine (None before startup)."""
    return _engine
