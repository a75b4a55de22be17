"""Shared fixtures for the API tests."""

import os

import pytest


# Set before the app is imported so tests write no log files
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient  # noqa: E402


@pytest.fixture
def app():
    """FastAPI application (lifespan not started: no Cassandra/Redis)."""
    from src.main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """Test client for the application."""
    return TestClient(app)
