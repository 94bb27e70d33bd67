"""Tests for the application entry point: startup wiring and /health."""

import pytest
from fastapi.testclient import TestClient

import config.safety_config as safety_config
from application.api.main import app
from config.safety_config import PrescriptionSafetyConfig


@pytest.fixture
def use_config(monkeypatch):
    def _use(config: PrescriptionSafetyConfig):
        monkeypatch.setattr(safety_config, "_config", config)
        return config
    return _use


class TestHealthEndpoint:
    """GET /health."""

    def test_healthy_with_builtin_catalog(self, use_config):
        use_config(PrescriptionSafetyConfig())

        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["engine"]["catalog"]["version"].startswith("builtin")
        assert data["audit"]["running"] is True

    def test_degraded_without_catalog(self, use_config, tmp_path):
        config = PrescriptionSafetyConfig()
        config.catalog.path = str(tmp_path / "missing.yaml")
        use_config(config)

        with TestClient(app) as client:
            health = client.get("/health").json()
            evaluate = client.post(
                "/api/prescription-safety/evaluate",
                json={"patient": {"patient_id": "p"}, "medication": {"name": "Aspirin"}},
            )

        assert health["status"] == "degraded"
        assert health["engine"]["catalog"] is None
        assert evaluate.status_code == 503

    def test_health_counts_evaluations(self, use_config):
        use_config(PrescriptionSafetyConfig())

        with TestClient(app) as client:
            client.post(
                "/api/prescription-safety/evaluate",
                json={"patient": {"patient_id": "p", "allergies": ["sulfa"]},
                      "medication": {"name": "Sulfamethoxazole"}},
            )
            data = client.get("/health").json()

        assert data["engine"]["total_evaluations"] == 1
        assert data["engine"]["by_action"] == {"DO_NOT_PRESCRIBE": 1}

    def test_root(self):
        response = TestClient(app).get("/")
        assert "Prescription Safety API" in response.json()["message"]
