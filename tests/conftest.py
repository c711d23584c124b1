import pytest
import mongomock
from unittest.mock import patch
from fastapi.testclient import TestClient

from apps.api.main import app
from apps.api.services.storage import Storage, DbConfig


@pytest.fixture
def mongo_client():
    """In-memory stand-in for the MongoDB server"""
    return mongomock.MongoClient()


@pytest.fixture
def storage(mongo_client):
    storage = Storage(DbConfig(url="mongodb://localhost:27017"), client=mongo_client)
    storage.ensure_indexes()
    return storage


@pytest.fixture
def client(storage):
    """Test client whose lifespan connects to the mongomock-backed storage"""
    with patch("apps.api.main.create_storage", return_value=storage):
        with TestClient(app, raise_server_exceptions=False) as client:
            yield client


@pytest.fixture
def patient(client):
    response = client.post("/api/patients", json={
        "patientId": "P1",
        "name": "Ayse Demir",
        "age": 60,
        "medicalHistory": "CKD stage 5",
        "emergencyContact": {"name": "Mehmet Demir", "phone": "+90 555 0000", "relationship": "son"},
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def session(client, patient):
    response = client.post("/api/sessions", json={
        "patientId": patient["patientId"],
        "startTime": "2024-01-01T08:00:00Z",
    })
    assert response.status_code == 201
    return response.json()
