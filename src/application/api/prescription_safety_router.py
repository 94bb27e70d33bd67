"""Prescription Safety API Router.

REST endpoints for evaluating proposed prescriptions and authorizing them
through the safety gate. The router only translates HTTP to domain calls;
all rule logic lives in application.rules.

Prefix: /api/prescription-safety
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from application.rules import (
    AuthorizationGate,
    AuthorizationWorkflow,
    PrescriptionSafetyEngine,
    RuleCatalogRegistry,
)
from domain.prescription_safety_models import RuleCatalogError, ValidationError

from .prescription_safety_models import (
    AuthorizeRequest,
    AuthorizeResponse,
    CatalogReloadRequest,
    CatalogReloadResponse,
    CatalogSummaryResponse,
    EvaluateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prescription-safety", tags=["prescription-safety"])

# Set by dependency injection at startup
_engine: Optional[PrescriptionSafetyEngine] = None
_gate: Optional[AuthorizationGate] = None
_registry: Optional[RuleCatalogRegistry] = None
_catalog_path: Optional[str] = None
_catalog_dir: Optional[str] = None


def set_safety_services(
    engine: Optional[PrescriptionSafetyEngine],
    gate: Optional[AuthorizationGate],
    registry: Optional[RuleCatalogRegistry],
    catalog_path: Optional[str] = None,
    catalog_dir: Optional[str] = None,
):
    """Set the service instances (called from dependencies.py)."""
    global _engine, _gate, _registry, _catalog_path, _catalog_dir
    _engine = engine
    _gate = gate
    _registry = registry
    _catalog_path = catalog_path
    _catalog_dir = catalog_dir


def get_engine() -> PrescriptionSafetyEngine:
    """Dependency that provides the safety engine or raises 503."""
    if _engine is None:
        raise HTTPException(status_code=503, detail="Prescription safety engine not available")
    return _engine


def get_gate() -> AuthorizationGate:
    """Dependency that provides the authorization gate or raises 503."""
    if _gate is None:
        raise HTTPException(status_code=503, detail="Authorization gate not available")
    return _gate


def get_registry() -> RuleCatalogRegistry:
    """Dependency that provides the catalog registry or raises 503."""
    if _registry is None:
        raise HTTPException(status_code=503, detail="Rule catalog registry not available")
    return _registry


def get_catalog_path() -> Optional[str]:
    return _catalog_path


def get_catalog_dir() -> Optional[str]:
    return _catalog_dir


def _resolve_reload_path(requested: str, catalog_dir: Optional[str]) -> Path:
    """Resolve a caller-named catalog file inside the reload directory."""
    if not catalog_dir:
        raise HTTPException(status_code=403, detail="Reloading from a supplied path is disabled")
    root = Path(catalog_dir).resolve()
    candidate = (root / requested).resolve()
    if not candidate.is_relative_to(root):
        logger.warning(f"Rejected catalog reload outside {root}: {requested}")
        raise HTTPException(status_code=403, detail="Catalog path is outside the catalog directory")
    return candidate


def _to_domain(body):
    try:
        return body.patient.to_domain(), body.medication.to_domain()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/evaluate")
async def evaluate_prescription(
    body: EvaluateRequest,
    engine: PrescriptionSafetyEngine = Depends(get_engine),
):
    """Evaluate a proposed medication against the patient snapshot."""
    patient, medication = _to_domain(body)
    try:
        result = engine.evaluate(patient, medication)
    except RuleCatalogError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return result.to_dict()


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize_prescription(
    body: AuthorizeRequest,
    engine: PrescriptionSafetyEngine = Depends(get_engine),
    gate: AuthorizationGate = Depends(get_gate),
):
    """Evaluate, then decide whether the provider may create the prescription.

    A denial is returned with status 200 and allowed=false; the provider may
    acknowledge the risks and submit again.
    """
    patient, medication = _to_domain(body)
    workflow = AuthorizationWorkflow(engine, gate, provider_id=body.provider_id)
    try:
        result = workflow.evaluate(patient, medication)
    except RuleCatalogError as e:
        raise HTTPException(status_code=503, detail=str(e))

    decision = workflow.authorize(body.provider_override_ack)
    return AuthorizeResponse(evaluation=result.to_dict(), decision=decision.to_dict())


@router.get("/catalog", response_model=CatalogSummaryResponse)
async def get_catalog(registry: RuleCatalogRegistry = Depends(get_registry)):
    """Summary of the active rule catalog."""
    try:
        catalog = registry.current()
    except RuleCatalogError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return CatalogSummaryResponse(**catalog.describe())


@router.post("/catalog/reload", response_model=CatalogReloadResponse)
async def reload_catalog(
    body: Optional[CatalogReloadRequest] = None,
    registry: RuleCatalogRegistry = Depends(get_registry),
    configured_path: Optional[str] = Depends(get_catalog_path),
    catalog_dir: Optional[str] = Depends(get_catalog_dir),
):
    """Hot-reload the rule catalog. The current catalog stays active on failure.

    Without a body the configured catalog path is reloaded. A path in the
    body is resolved inside the configured reload directory.
    """
    if body and body.path:
        path = _resolve_reload_path(body.path, catalog_dir)
    elif configured_path:
        path = configured_path
    else:
        raise HTTPException(status_code=400, detail="No catalog path given or configured")

    previous_version = registry.current().version if registry.is_loaded else None
    try:
        catalog = registry.reload(path)
    except RuleCatalogError as e:
        logger.warning(f"Catalog reload rejected: {e}")
        raise HTTPException(
            status_code=422,
            detail=f"Catalog reload failed; keeping catalog {previous_version}",
        )

    logger.info(f"Rule catalog reloaded from {path}: {previous_version} → {catalog.version}")
    return CatalogReloadResponse(
        previous_version=previous_version,
        catalog=CatalogSummaryResponse(**catalog.describe()),
    )
