"""Shared fixtures for the Testfachdienst test suite."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import pytest
from fastapi.testclient import TestClient

from testfachdienst.src.config import Settings
from testfachdienst.src.main import create_app


def _make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "port": 8080,
        "management_port": 8080,
        "log_format": "text",
    }
    values.update(overrides)
    # _env_file=None keeps a developer's .env out of the tests
    return Settings(_env_file=None, **values)


def _make_payload(prescription_id: str = "RX-2025-000123", **overrides: Any) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    payload = {
        "medicationName": "Ibuprofen 400 mg",
        "dosage": "1 tablet, 3x daily after meals",
        "issuedAt": (now - timedelta(days=1)).isoformat(),
        "expiresAt": (now + timedelta(days=90)).isoformat(),
        "patientId": "PAT-123456",
        "practitionerId": "PRAC-98765",
        "prescriptionId": prescription_id,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return _make_settings


@pytest.fixture
def erezept_payload() -> Callable[..., Dict[str, Any]]:
    """Factory for valid camelCase prescription payloads."""
    return _make_payload


@pytest.fixture
def settings() -> Settings:
    return _make_settings()


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def context_client():
    app = create_app(_make_settings(context_path="achelos_testfachdienst/"))
    with TestClient(app) as test_client:
        yield test_client
