"""
Integration test fixtures. The app runs against the composed services from the root
conftest (temporary SQLite database, fake vector store and generator).
"""
import pytest
from jose import jwt


def _encode(sub: str = "ext_u1", secret: str = "test-secret") -> str:
    return jwt.encode({"sub": sub}, secret, algorithm="HS256")


@pytest.fixture
def make_token():
    """Signs a session token; defaults to the seeded user and the test secret."""
    return _encode


@pytest.fixture
def api_client(settings, services):
    """FastAPI TestClient over the test service graph."""
    from fastapi.testclient import TestClient
    from api.api import create_app

    with TestClient(create_app(settings=settings, services=services)) as client:
        yield client


@pytest.fixture
def auth_headers():
    """Bearer token for the seeded user."""
    return {"Authorization": f"Bearer {_encode()}"}
