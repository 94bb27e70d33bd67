"""Integration tests for the Prescription Safety API endpoints.

Runs the real engine and gate behind the router, with the audit publisher
mocked; 503 responses when services are not wired.
"""

from unittest.mock import MagicMock

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient

from application.api.prescription_safety_router import (
    get_catalog_dir,
    get_catalog_path,
    get_engine,
    get_gate,
    get_registry,
    router,
    set_safety_services,
)
from application.rules import (
    AuthorizationGate,
    PrescriptionSafetyEngine,
    RuleCatalogRegistry,
    build_default_catalog,
)


PREFIX = "/api/prescription-safety"
LATEX_RULE = {"kind": "allergy", "id": "AL100", "allergen": "latex", "cross_reactive": ["latex"]}


@pytest.fixture
def mock_publisher():
    publisher = MagicMock()
    publisher.publish.return_value = None
    return publisher


@pytest.fixture
def services(mock_publisher):
    registry = RuleCatalogRegistry(build_default_catalog())
    engine = PrescriptionSafetyEngine(registry=registry)
    gate = AuthorizationGate(audit_publisher=mock_publisher)
    return engine, gate, registry


@pytest.fixture
def app_with_services(services):
    """FastAPI app with real services injected through overrides."""
    engine, gate, registry = services
    app = FastAPI()
    app.include_router(router)

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_gate] = lambda: gate
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_catalog_path] = lambda: None
    app.dependency_overrides[get_catalog_dir] = lambda: None

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_services):
    return TestClient(app_with_services)


@pytest.fixture
def app_unavailable():
    """FastAPI app with no services wired (503 mode)."""
    set_safety_services(None, None, None)
    app = FastAPI()
    app.include_router(router)
    return app


def _body(allergies=None, current=None, medication="Sulfamethoxazole", **patient):
    return {
        "patient": {
            "patient_id": "patient:1",
            "allergies": allergies or [],
            "current_medications": current or [],
            **patient,
        },
        "medication": {"name": medication},
    }


class TestServiceUnavailable:
    """503 when services are not initialized."""

    def test_evaluate_503(self, app_unavailable):
        response = TestClient(app_unavailable).post(f"{PREFIX}/evaluate", json=_body())
        assert response.status_code == 503

    def test_catalog_503(self, app_unavailable):
        response = TestClient(app_unavailable).get(f"{PREFIX}/catalog")
        assert response.status_code == 503

    def test_empty_registry_is_503(self, app_with_services):
        app_with_services.dependency_overrides[get_engine] = lambda: PrescriptionSafetyEngine(
            registry=RuleCatalogRegistry()
        )

        response = TestClient(app_with_services).post(f"{PREFIX}/evaluate", json=_body())

        assert response.status_code == 503
        assert "No rule catalog loaded" in response.json()["detail"]


class TestEvaluateEndpoint:
    """POST /evaluate."""

    def test_allergy(self, client):
        response = client.post(f"{PREFIX}/evaluate", json=_body(allergies=["sulfa"]))

        assert response.status_code == 200
        data = response.json()
        assert data["recommendedAction"] == "DO_NOT_PRESCRIBE"
        assert data["hasAbsoluteContraindication"] is True
        assert data["findings"][0]["type"] == "allergy"
        assert data["catalogVersion"] == build_default_catalog().version

    def test_current_medication_objects(self, client):
        body = _body(current=[{"name": "Viagra", "generic_name": "sildenafil"}], medication="Tadalafil")

        data = client.post(f"{PREFIX}/evaluate", json=body).json()

        assert data["recommendedAction"] == "USE_WITH_EXTREME_CAUTION"
        assert data["findings"][0]["interactingMedication"] == "Viagra"

    def test_negative_age_is_422(self, client):
        response = client.post(f"{PREFIX}/evaluate", json=_body(age=-3))
        assert response.status_code == 422

    def test_missing_patient_id_is_422(self, client):
        body = _body()
        del body["patient"]["patient_id"]

        assert client.post(f"{PREFIX}/evaluate", json=body).status_code == 422


class TestAuthorizeEndpoint:
    """POST /authorize."""

    def test_absolute_denied_without_ack(self, client, mock_publisher):
        body = {**_body(allergies=["sulfa"]), "provider_id": "dr:1"}

        response = client.post(f"{PREFIX}/authorize", json=body)

        assert response.status_code == 200
        decision = response.json()["decision"]
        assert decision["allowed"] is False
        assert decision["state"] == "DENIED"
        assert decision["auditEvent"]["overrideGiven"] is False
        mock_publisher.publish.assert_called_once()

    def test_absolute_allowed_with_ack(self, client):
        body = {**_body(allergies=["sulfa"]), "provider_id": "dr:1", "provider_override_ack": True}

        data = client.post(f"{PREFIX}/authorize", json=body).json()

        assert data["decision"]["allowed"] is True
        assert data["decision"]["overrideUsed"] is True
        assert data["decision"]["auditEvent"]["providerId"] == "dr:1"
        assert data["evaluation"]["recommendedAction"] == "DO_NOT_PRESCRIBE"

    def test_safe_prescription(self, client):
        body = {**_body(medication="Amoxicillin"), "provider_id": "dr:1"}

        data = client.post(f"{PREFIX}/authorize", json=body).json()

        assert data["decision"]["allowed"] is True
        assert data["decision"]["reason"] is None


class TestCatalogEndpoints:
    """GET /catalog and POST /catalog/reload."""

    def test_catalog_summary(self, client):
        data = client.get(f"{PREFIX}/catalog").json()

        assert data["version"] == build_default_catalog().version
        assert data["rules_loaded"]["interaction"] == 13

    def test_reload_inside_catalog_dir(self, app_with_services, client, services, tmp_path):
        app_with_services.dependency_overrides[get_catalog_dir] = lambda: str(tmp_path)
        (tmp_path / "catalog.yaml").write_text(
            yaml.safe_dump({"version": "clinic-7", "rules": [LATEX_RULE]})
        )

        response = client.post(f"{PREFIX}/catalog/reload", json={"path": "catalog.yaml"})

        assert response.status_code == 200
        data = response.json()
        assert data["previous_version"] == build_default_catalog().version
        assert data["catalog"]["version"] == "clinic-7"
        assert services[2].current().version == "clinic-7"

    def test_reload_configured_path(self, app_with_services, client, services, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(yaml.safe_dump({"version": "clinic-8", "rules": [LATEX_RULE]}))
        app_with_services.dependency_overrides[get_catalog_path] = lambda: str(path)

        response = client.post(f"{PREFIX}/catalog/reload")

        assert response.status_code == 200
        assert services[2].current().version == "clinic-8"

    @pytest.mark.parametrize("requested", ["../outside.yaml", "/etc/passwd", "nested/../../outside.yaml"])
    def test_reload_outside_catalog_dir_rejected(self, app_with_services, client, services, tmp_path, requested):
        catalog_dir = tmp_path / "catalogs"
        catalog_dir.mkdir()
        (tmp_path / "outside.yaml").write_text(
            yaml.safe_dump({"version": "outside", "rules": [LATEX_RULE]})
        )
        app_with_services.dependency_overrides[get_catalog_dir] = lambda: str(catalog_dir)

        response = client.post(f"{PREFIX}/catalog/reload", json={"path": requested})

        assert response.status_code == 403
        assert services[2].current().version == build_default_catalog().version

    def test_supplied_path_needs_catalog_dir(self, client, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(yaml.safe_dump({"version": "clinic-9", "rules": [LATEX_RULE]}))

        response = client.post(f"{PREFIX}/catalog/reload", json={"path": str(path)})

        assert response.status_code == 403

    def test_reload_failure_keeps_catalog(self, app_with_services, client, services, tmp_path):
        app_with_services.dependency_overrides[get_catalog_dir] = lambda: str(tmp_path)
        (tmp_path / "broken.yaml").write_text("secret: [unclosed")

        response = client.post(f"{PREFIX}/catalog/reload", json={"path": "broken.yaml"})

        assert response.status_code == 422
        assert "secret" not in response.json()["detail"]
        assert str(tmp_path) not in response.json()["detail"]
        assert services[2].current().version == build_default_catalog().version

    def test_reload_without_path(self, client):
        response = client.post(f"{PREFIX}/catalog/reload")
        assert response.status_code == 400
