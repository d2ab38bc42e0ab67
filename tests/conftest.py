"""
Pytest configuration and fixtures for Print Orders Backend tests.
"""

import json

import pytest
from fastapi.testclient import TestClient

from print_orders_backend.configuration import load_settings
from print_orders_backend.database import OrderDatabase
from print_orders_backend.main import create_app
from print_orders_backend.uploads import UploadHandler

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "test-password"


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every path at a per-test temporary directory."""
    return load_settings(
        environ={},
        overrides={
            "database_path": str(tmp_path / "data" / "orders.db"),
            "upload_dir": str(tmp_path / "uploads"),
            "static_dir": str(tmp_path / "dist"),
            "images_dir": str(tmp_path / "images"),
            "admin_username": ADMIN_USERNAME,
            "admin_password": ADMIN_PASSWORD,
        },
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Test client with the application lifespan (database open) active."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_credentials():
    return {"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}


@pytest.fixture
def session_id(client, admin_credentials):
    response = client.post("/api/admin/login", json=admin_credentials)
    assert response.status_code == 200
    return response.json()["sessionId"]


@pytest.fixture
def admin_headers(session_id):
    return {"sessionid": session_id}


@pytest.fixture
def order_payload():
    """Form fields as the intake form sends them."""
    return {
        "fullName": "Asha Patel",
        "phoneNumber": "+91 98765 43210",
        "printType": "color",
        "bindingColorType": "spiral-black",
        "copies": 2,
        "paperSize": "A4",
        "printSide": "double",
        "selectedPages": "1-10",
        "colorPages": "1,2",
        "bwPages": "3-10",
        "specialInstructions": "Staple top left",
        "totalCost": 48.5,
    }


@pytest.fixture
def sample_pdf():
    """Minimal PDF bytes for upload tests."""
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF"


@pytest.fixture
def submit_order(client):
    """Post an order through the public endpoint and return the response."""

    def _submit(payload, files=()):
        multipart = [("files", file) for file in files]
        return client.post(
            "/api/orders",
            data={"orderData": json.dumps(payload)},
            files=multipart or None,
        )

    return _submit


@pytest.fixture
def database(tmp_path):
    db = OrderDatabase(tmp_path / "unit.db").open()
    yield db
    db.close()


@pytest.fixture
def upload_handler(tmp_path):
    return UploadHandler(tmp_path / "unit-uploads", max_file_bytes=1024)
