"""
Prescription Safety Configuration

Loads configuration from config/prescription_safety.yaml, with environment
variable overrides for container deployments.

Example YAML:

    catalog:
      path: config/rule_catalog.yaml
      reload_dir: config
    authorization:
      require_general_acknowledgment: true
    audit:
      sink: jsonl
      jsonl_path: logs/prescription_audit.jsonl
      max_attempts: 5
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class AuditSinkType(str, Enum):
    """Where authorization audit events are persisted."""
    MEMORY = "memory"
    JSONL = "jsonl"
    POSTGRES = "postgres"


@dataclass
class CatalogConfig:
    """Rule catalog source. No path means the built-in catalog.

    reload_dir is the only directory POST /catalog/reload may read a
    caller-named file from; unset disables caller-supplied paths.
    """
    path: Optional[str] = None
    reload_dir: Optional[str] = None


@dataclass
class AuthorizationConfig:
    """Authorization gate settings."""
    require_general_acknowledgment: bool = False


@dataclass
class EngineConfig:
    """Evaluation engine settings."""
    enable_dosage_overlap_check: bool = True


@dataclass
class AuditConfig:
    """Audit delivery settings."""
    sink: AuditSinkType = AuditSinkType.MEMORY
    jsonl_path: str = "logs/prescription_audit.jsonl"
    max_attempts: int = 5
    retry_delay: float = 0.5
    max_retry_delay: float = 30.0
    backlog_limit: int = 1000


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass
class PrescriptionSafetyConfig:
    """Complete prescription safety configuration."""
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    authorization: AuthorizationConfig = field(default_factory=AuthorizationConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrescriptionSafetyConfig":
        """Create config from dictionary (parsed YAML)."""
        catalog_data = data.get("catalog", {}) or {}
        auth_data = data.get("authorization", {}) or {}
        engine_data = data.get("engine", {}) or {}
        audit_data = data.get("audit", {}) or {}

        audit = AuditConfig(
            sink=AuditSinkType(audit_data.get("sink", "memory")),
            jsonl_path=audit_data.get("jsonl_path", AuditConfig.jsonl_path),
            max_attempts=int(audit_data.get("max_attempts", AuditConfig.max_attempts)),
            retry_delay=float(audit_data.get("retry_delay", AuditConfig.retry_delay)),
            max_retry_delay=float(audit_data.get("max_retry_delay", AuditConfig.max_retry_delay)),
            backlog_limit=int(audit_data.get("backlog_limit", AuditConfig.backlog_limit)),
        )

        return cls(
            catalog=CatalogConfig(
                path=catalog_data.get("path"),
                reload_dir=catalog_data.get("reload_dir"),
            ),
            authorization=AuthorizationConfig(
                require_general_acknowledgment=_as_bool(
                    auth_data.get("require_general_acknowledgment", False)
                ),
            ),
            engine=EngineConfig(
                enable_dosage_overlap_check=_as_bool(
                    engine_data.get("enable_dosage_overlap_check", True)
                ),
            ),
            audit=audit,
            log_level=str(data.get("log_level", "INFO")).upper(),
        )

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> "PrescriptionSafetyConfig":
        """Load config from YAML file; defaults when the file does not exist."""
        if path is None:
            path = os.getenv("PRESCRIPTION_SAFETY_CONFIG_PATH", "config/prescription_safety.yaml")

        config_path = Path(path)
        if not config_path.is_absolute():
            config_path = Path.cwd() / path

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "PrescriptionSafetyConfig":
        """
        Create config from YAML, then apply environment variable overrides.
        """
        config = cls.from_yaml()

        if os.getenv("PRESCRIPTION_SAFETY_CATALOG_PATH"):
            config.catalog.path = os.getenv("PRESCRIPTION_SAFETY_CATALOG_PATH")

        if os.getenv("PRESCRIPTION_SAFETY_CATALOG_DIR"):
            config.catalog.reload_dir = os.getenv("PRESCRIPTION_SAFETY_CATALOG_DIR")

        if os.getenv("PRESCRIPTION_SAFETY_REQUIRE_ACK"):
            config.authorization.require_general_acknowledgment = _as_bool(
                os.getenv("PRESCRIPTION_SAFETY_REQUIRE_ACK")
            )

        if os.getenv("PRESCRIPTION_SAFETY_DOSAGE_OVERLAP"):
            config.engine.enable_dosage_overlap_check = _as_bool(
                os.getenv("PRESCRIPTION_SAFETY_DOSAGE_OVERLAP")
            )

        if os.getenv("PRESCRIPTION_AUDIT_SINK"):
            config.audit.sink = AuditSinkType(os.getenv("PRESCRIPTION_AUDIT_SINK").lower())

        if os.getenv("PRESCRIPTION_AUDIT_JSONL_PATH"):
            config.audit.jsonl_path = os.getenv("PRESCRIPTION_AUDIT_JSONL_PATH")

        if os.getenv("PRESCRIPTION_AUDIT_MAX_ATTEMPTS"):
            config.audit.max_attempts = int(os.getenv("PRESCRIPTION_AUDIT_MAX_ATTEMPTS"))

        if os.getenv("PRESCRIPTION_SAFETY_LOG_LEVEL"):
            config.log_level = os.getenv("PRESCRIPTION_SAFETY_LOG_LEVEL").upper()

        return config


# Global config instance (lazy loaded)
_config: Optional[PrescriptionSafetyConfig] = None


def get_safety_config() -> PrescriptionSafetyConfig:
    """Get the global prescription safety configuration (lazy loaded)."""
    global _config
    if _config is None:
        _config = PrescriptionSafetyConfig.from_env()
    return _config


def reload_config(path: Optional[str] = None) -> PrescriptionSafetyConfig:
    """Reload configuration from file."""
    global _config
    _config = PrescriptionSafetyConfig.from_yaml(path)
    return _config
