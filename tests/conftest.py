import pytest

from app import create_app
from config import TestingConfig
from persistence import JsonPersistence
from storage import Storage

from helpers import DOCTOR, PATIENT


# --- Store fixtures ---

@pytest.fixture
def data_file(tmp_path):
    return str(tmp_path / "data" / "data.json")

@pytest.fixture
def storage(data_file):
    return Storage(JsonPersistence(data_file))

@pytest.fixture
def record_file(tmp_path):
    """Factory writing a small file to disk and returning its path."""
    def _make(name="lab.pdf", content=b"%PDF-1.4 test"):
        path = tmp_path / name
        path.write_bytes(content)
        return str(path)
    return _make

# --- App fixtures ---

@pytest.fixture
def app_overrides(tmp_path):
    return {
        "DATA_PATH": str(tmp_path / "data"),
        "UPLOADS_PATH": str(tmp_path / "uploads"),
    }

@pytest.fixture
def app(app_overrides):
    return create_app(TestingConfig, config_overrides=app_overrides)

@pytest.fixture
def store(app):
    return app.extensions["medichain_storage"]

@pytest.fixture
def client(app):
    return app.test_client()

@pytest.fixture
def user_client(app):
    """Factory: registers (if needed) and logs in an address, returning its own test client."""
    def _make(address, role):
        client = app.test_client()
        client.post("/api/users", json={"address": address, "role": role})
        response = client.post("/api/auth/login", json={"address": address, "role": role})
        assert response.status_code == 200, response.get_json()
        return client
    return _make

@pytest.fixture
def patient_client(user_client):
    return user_client(PATIENT, "patient")

@pytest.fixture
def doctor_client(user_client):
    return user_client(DOCTOR, "doctor")
