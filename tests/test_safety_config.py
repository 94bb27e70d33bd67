"""Tests for PrescriptionSafetyConfig loading and overrides."""

import pytest
import yaml

import config.safety_config as safety_config
from config.safety_config import AuditSinkType, PrescriptionSafetyConfig


ENV_VARS = (
    "PRESCRIPTION_SAFETY_CONFIG_PATH",
    "PRESCRIPTION_SAFETY_CATALOG_PATH",
    "PRESCRIPTION_SAFETY_CATALOG_DIR",
    "PRESCRIPTION_SAFETY_REQUIRE_ACK",
    "PRESCRIPTION_SAFETY_DOSAGE_OVERLAP",
    "PRESCRIPTION_AUDIT_SINK",
    "PRESCRIPTION_AUDIT_JSONL_PATH",
    "PRESCRIPTION_AUDIT_MAX_ATTEMPTS",
    "PRESCRIPTION_SAFETY_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PRESCRIPTION_SAFETY_CONFIG_PATH", str(tmp_path / "missing.yaml"))
    monkeypatch.setattr(safety_config, "_config", None)
    return monkeypatch


class TestPrescriptionSafetyConfig:
    """Tests for config construction."""

    def test_defaults(self):
        config = PrescriptionSafetyConfig()

        assert config.catalog.path is None
        assert config.catalog.reload_dir is None
        assert config.authorization.require_general_acknowledgment is False
        assert config.engine.enable_dosage_overlap_check is True
        assert config.audit.sink == AuditSinkType.MEMORY
        assert config.audit.max_attempts == 5
        assert config.log_level == "INFO"

    def test_from_dict(self):
        config = PrescriptionSafetyConfig.from_dict({
            "catalog": {"path": "rules.yaml", "reload_dir": "/srv/catalogs"},
            "authorization": {"require_general_acknowledgment": "true"},
            "engine": {"enable_dosage_overlap_check": False},
            "audit": {"sink": "jsonl", "jsonl_path": "/tmp/audit.jsonl", "max_attempts": 2,
                      "backlog_limit": 50},
            "log_level": "debug",
        })

        assert config.catalog.path == "rules.yaml"
        assert config.catalog.reload_dir == "/srv/catalogs"
        assert config.authorization.require_general_acknowledgment is True
        assert config.engine.enable_dosage_overlap_check is False
        assert config.audit.sink == AuditSinkType.JSONL
        assert config.audit.jsonl_path == "/tmp/audit.jsonl"
        assert config.audit.max_attempts == 2
        assert config.audit.backlog_limit == 50
        assert config.audit.retry_delay == 0.5
        assert config.log_level == "DEBUG"

    def test_unknown_sink_rejected(self):
        with pytest.raises(ValueError):
            PrescriptionSafetyConfig.from_dict({"audit": {"sink": "kafka"}})

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "safety.yaml"
        path.write_text(yaml.safe_dump({"audit": {"sink": "postgres"}}))

        config = PrescriptionSafetyConfig.from_yaml(str(path))

        assert config.audit.sink == AuditSinkType.POSTGRES

    def test_from_yaml_missing_file_gives_defaults(self, tmp_path):
        config = PrescriptionSafetyConfig.from_yaml(str(tmp_path / "nope.yaml"))
        assert config == PrescriptionSafetyConfig()

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert PrescriptionSafetyConfig.from_yaml(str(path)) == PrescriptionSafetyConfig()


class TestEnvironmentOverrides:
    """Tests for from_env and the global config."""

    def test_env_overrides(self, clean_env):
        clean_env.setenv("PRESCRIPTION_SAFETY_CATALOG_PATH", "/etc/rules.yaml")
        clean_env.setenv("PRESCRIPTION_SAFETY_CATALOG_DIR", "/etc/catalogs")
        clean_env.setenv("PRESCRIPTION_SAFETY_REQUIRE_ACK", "yes")
        clean_env.setenv("PRESCRIPTION_SAFETY_DOSAGE_OVERLAP", "false")
        clean_env.setenv("PRESCRIPTION_AUDIT_SINK", "JSONL")
        clean_env.setenv("PRESCRIPTION_AUDIT_MAX_ATTEMPTS", "9")
        clean_env.setenv("PRESCRIPTION_SAFETY_LOG_LEVEL", "warning")

        config = PrescriptionSafetyConfig.from_env()

        assert config.catalog.path == "/etc/rules.yaml"
        assert config.catalog.reload_dir == "/etc/catalogs"
        assert config.authorization.require_general_acknowledgment is True
        assert config.engine.enable_dosage_overlap_check is False
        assert config.audit.sink == AuditSinkType.JSONL
        assert config.audit.max_attempts == 9
        assert config.log_level == "WARNING"

    def test_config_path_from_env(self, clean_env, tmp_path):
        path = tmp_path / "safety.yaml"
        path.write_text(yaml.safe_dump({"catalog": {"path": "from-file.yaml"}}))
        clean_env.setenv("PRESCRIPTION_SAFETY_CONFIG_PATH", str(path))

        assert PrescriptionSafetyConfig.from_env().catalog.path == "from-file.yaml"

    def test_global_config_is_cached(self, clean_env):
        first = safety_config.get_safety_config()
        assert safety_config.get_safety_config() is first

    def test_reload_config(self, clean_env, tmp_path):
        path = tmp_path / "safety.yaml"
        path.write_text(yaml.safe_dump({"log_level": "error"}))
        safety_config.get_safety_config()

        reloaded = safety_config.reload_config(str(path))

        assert reloaded.log_level == "ERROR"
        assert safety_config.get_safety_config() is reloaded
