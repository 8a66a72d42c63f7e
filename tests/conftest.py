"""Shared fixtures: an isolated app, in-memory database and temp upload dir per test."""

import io
import os

# must be set before `models` builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "testing"

import pytest

from api import create_app
from models import storage
from utils.security import revoked_tokens

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<</Root 1 0 R>>\n%%EOF"


@pytest.fixture
def app(tmp_path):
    """Flask app on TestingConfig with a fresh schema.

    Yields:
        Flask application.
    """
    app = create_app("testing")
    app.config["UPLOAD_DIR"] = str(tmp_path / "uploads")
    storage.reload()
    yield app
    storage.drop_all()
    revoked_tokens.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def upload_dir(app):
    return app.config["UPLOAD_DIR"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, email="alice@example.com", password="s3cret-pass"):
    response = client.post("/auth/signup", json={"email": email, "password": password})
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def signin(client, email="alice@example.com", password="s3cret-pass"):
    response = client.post("/auth/signin", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def upload(client, token, content=PNG_BYTES, filename="photo.png", mimetype="image/png"):
    return client.post(
        "/file/upload",
        data={"file": (io.BytesIO(content), filename, mimetype)},
        headers=bearer(token),
        content_type="multipart/form-data",
    )


@pytest.fixture
def alice(client):
    """Signed-in user; returns the signin token response."""
    signup(client, "alice@example.com")
    return signin(client, "alice@example.com")


@pytest.fixture
def bob(client):
    """Second user for isolation tests."""
    signup(client, "bob@example.com")
    return signin(client, "bob@example.com")
