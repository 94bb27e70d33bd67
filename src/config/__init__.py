"""Configuration package for the prescription safety engine."""

from .safety_config import (
    AuditSinkType,
    PrescriptionSafetyConfig,
    get_safety_config,
    reload_config,
)

__all__ = [
    "AuditSinkType",
    "PrescriptionSafetyConfig",
    "get_safety_config",
    "reload_config",
]
