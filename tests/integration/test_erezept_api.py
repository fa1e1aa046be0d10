"""
Integration tests for the REST surface.

The full application runs in-process with an in-memory SQLite database.
Tests cover:
- Prescription CRUD status codes and Location headers
- Context path prefixing
- Greeting, job and AsyncAPI endpoints
- Management endpoints and security headers
"""

import pytest
from fastapi.testclient import TestClient

from testfachdienst.src.main import create_app


class TestErezeptCrud:

    def test_create_returns_201_with_location(self, client, erezept_payload):
        response = client.post("/api/erezept", json=erezept_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["id"] > 0
        assert body["status"] == "CREATED"
        assert body["prescriptionId"] == "RX-2025-000123"
        assert response.headers["location"] == f"/api/erezept/{body['id']}"

    def test_create_ignores_supplied_id(self, client, erezept_payload):
        response = client.post("/api/erezept", json=erezept_payload(id=4711))

        assert response.status_code == 201
        assert response.json()["id"] != 4711

    def test_create_keeps_supplied_status(self, client, erezept_payload):
        response = client.post("/api/erezept", json=erezept_payload(status="SIGNED"))

        assert response.json()["status"] == "SIGNED"

    def test_duplicate_prescription_id_conflicts(self, client, erezept_payload):
        client.post("/api/erezept", json=erezept_payload("RX-DUP"))

        response = client.post("/api/erezept", json=erezept_payload("RX-DUP"))

        assert response.status_code == 409
        assert response.json()["detail"] == "PrescriptionId already exists"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"medicationName": ""},
            {"dosage": "   "},
            {"issuedAt": "2999-01-01T00:00:00Z"},
            {"expiresAt": "2000-01-01T00:00:00Z"},
            {"prescriptionId": "X" * 65},
            {"status": "LOST"},
        ],
    )
    def test_invalid_payload_is_rejected(self, client, erezept_payload, overrides):
        response = client.post("/api/erezept", json=erezept_payload(**overrides))

        assert response.status_code == 422
        assert response.json()["detail"]

    def test_missing_required_field(self, client, erezept_payload):
        payload = erezept_payload()
        del payload["patientId"]

        assert client.post("/api/erezept", json=payload).status_code == 422

    def test_list_and_get(self, client, erezept_payload):
        first = client.post("/api/erezept", json=erezept_payload("RX-1")).json()
        second = client.post("/api/erezept", json=erezept_payload("RX-2")).json()

        listed = client.get("/api/erezept").json()
        assert [item["id"] for item in listed] == [first["id"], second["id"]]

        fetched = client.get(f"/api/erezept/{second['id']}")
        assert fetched.status_code == 200
        assert fetched.json() == second

    def test_get_by_prescription_id(self, client, erezept_payload):
        created = client.post("/api/erezept", json=erezept_payload("RX-LOOKUP")).json()

        assert client.get("/api/erezept/by-prescription/RX-LOOKUP").json()["id"] == created["id"]
        assert client.get("/api/erezept/by-prescription/RX-NONE").status_code == 404

    def test_get_missing_is_404(self, client):
        response = client.get("/api/erezept/999")

        assert response.status_code == 404
        assert response.json()["detail"] == "Prescription not found"

    def test_update(self, client, erezept_payload):
        created = client.post("/api/erezept", json=erezept_payload("RX-UPD", status="SIGNED")).json()

        response = client.put(
            f"/api/erezept/{created['id']}",
            json=erezept_payload("RX-IGNORED", dosage="2 tablets", status="DISPENSED"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["dosage"] == "2 tablets"
        assert body["status"] == "DISPENSED"
        assert body["prescriptionId"] == "RX-UPD"
        assert body["issuedAt"] == created["issuedAt"]

    def test_update_without_status_resets_to_created(self, client, erezept_payload):
        created = client.post("/api/erezept", json=erezept_payload("RX-RESET", status="SIGNED")).json()

        response = client.put(f"/api/erezept/{created['id']}", json=erezept_payload("RX-RESET"))

        assert response.json()["status"] == "CREATED"

    def test_update_missing_is_404(self, client, erezept_payload):
        assert client.put("/api/erezept/999", json=erezept_payload()).status_code == 404

    def test_delete(self, client, erezept_payload):
        created = client.post("/api/erezept", json=erezept_payload()).json()

        assert client.delete(f"/api/erezept/{created['id']}").status_code == 204
        assert client.delete(f"/api/erezept/{created['id']}").status_code == 404
        assert client.get(f"/api/erezept/{created['id']}").status_code == 404


class TestContextPath:

    def test_routes_are_prefixed(self, context_client, erezept_payload):
        response = context_client.post("/achelos_testfachdienst/api/erezept", json=erezept_payload())

        assert response.status_code == 201
        created_id = response.json()["id"]
        assert response.headers["location"] == f"/achelos_testfachdienst/api/erezept/{created_id}"

    def test_unprefixed_routes_do_not_exist(self, context_client):
        assert context_client.get("/api/erezept").status_code == 404
        assert context_client.get("/hellozeta").status_code == 404

    def test_management_routes_are_prefixed(self, context_client):
        assert context_client.get("/achelos_testfachdienst/health").status_code == 200
        assert context_client.get("/achelos_testfachdienst/openapi.json").status_code == 200


class TestServiceEndpoints:

    def test_hello_zeta(self, client):
        response = client.get("/hellozeta")

        assert response.status_code == 200
        assert response.json() == {"message": "Hello ZETA!"}

    def test_job_info(self, client):
        assert client.get("/jobs/info").json() == {"status": "fantastic!"}

    def test_self_disclosure_job_is_registered(self, client):
        jobs = client.get("/jobs/recurring").json()

        assert [job["id"] for job in jobs] == ["self-disclosure-export"]
        assert jobs[0]["interval_seconds"] == 60

    def test_asyncapi_document(self, client):
        document = client.get("/asyncapi.json").json()

        assert document["asyncapi"] == "3.0.0"
        assert document["channels"]["erezeptCreate"]["address"] == "/app/erezept.create"
        assert document["channels"]["erezeptTopic"]["address"] == "/topic/erezept"
        assert "ErezeptRequest" in document["components"]["schemas"]

    def test_asyncapi_document_with_context_path(self, context_client):
        document = context_client.get("/achelos_testfachdienst/asyncapi.json").json()

        assert document["servers"]["stomp"]["pathname"] == "/achelos_testfachdienst/ws"
        assert (
            document["channels"]["erezeptReply"]["address"]
            == "/achelos_testfachdienst/user/queue/erezept"
        )


class TestManagementEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "healthy"}

    def test_info(self, client):
        body = client.get("/info").json()

        assert body["service_name"] == "testfachdienst"
        assert body["status"] == "healthy"
        assert body["dependencies"] == {"database": "healthy"}

    def test_metrics(self, client, erezept_payload):
        client.post("/api/erezept", json=erezept_payload())

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "erezept_operations_total" in response.text

    def test_management_not_mounted_with_separate_port(self, settings_factory):
        app = create_app(settings_factory(management_port=8081))
        with TestClient(app) as separate:
            assert separate.get("/health").status_code == 404


class TestResponseHeaders:

    def test_security_headers(self, client):
        response = client.get("/hellozeta")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert "strict-transport-security" not in response.headers

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/hellozeta", headers={"X-Correlation-ID": "corr-123"})

        assert response.headers["x-correlation-id"] == "corr-123"
