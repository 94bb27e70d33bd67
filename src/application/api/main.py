"""Main FastAPI application entry point."""

import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.safety_config import get_safety_config

from .dependencies import (
    get_audit_publisher,
    get_safety_engine,
    initialize_prescription_safety,
    shutdown_prescription_safety,
)
from .prescription_safety_router import router as prescription_safety_router

load_dotenv()

logging.basicConfig(
    level=getattr(logging, get_safety_config().log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Prescription Safety API",
    description="Safety evaluation and authorization gate for proposed prescriptions",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(prescription_safety_router)


# ========================================
# Startup / Shutdown Events
# ========================================

@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("🚀 Starting Prescription Safety API...")
    await initialize_prescription_safety()


@app.on_event("shutdown")
async def shutdown_event():
    """Flush pending audit events before exit."""
    logger.info("Stopping Prescription Safety API...")
    await shutdown_prescription_safety()


@app.get("/health")
async def health_check():
    """Health check with engine and audit delivery statistics."""
    engine = get_safety_engine()
    publisher = get_audit_publisher()
    catalog_loaded = engine is not None and engine.registry is not None and engine.registry.is_loaded
    return {
        "status": "healthy" if catalog_loaded else "degraded",
        "engine": engine.get_statistics() if engine is not None else None,
        "audit": publisher.get_statistics() if publisher is not None else None,
    }


@app.get("/")
async def root():
    """Root endpoint - API info."""
    return {"message": "Prescription Safety API. Visit /docs for API documentation."}
