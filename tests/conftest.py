"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("CARRIER_API_TOKEN", "test-carrier-token")
os.environ.setdefault("CARRIER_WAREHOUSE_NAME", "Test Warehouse")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("WHATSAPP_ENABLED", "false")
os.environ.setdefault("DISCOUNT_EXPIRY_INTERVAL_SECONDS", "0")

from src.schemas.auth import TokenPayload  # noqa: E402

CUSTOMER_ID = "550e8400-e29b-41d4-a716-446655440000"
ADMIN_ID = "660e8400-e29b-41d4-a716-446655440000"
AUTH_HEADERS = {"Authorization": "Bearer valid-token"}


def make_token_payload(user_id: str = CUSTOMER_ID, role: str | None = None, email: str | None = "buyer@example.com") -> TokenPayload:
    """Build a decoded token payload for patching decode_jwt."""
    return TokenPayload(
        sub=user_id,
        email=email,
        role="authenticated",
        exp=9999999999,
        iat=1700000000,
        aud="authenticated",
        app_metadata={"role": role} if role else {},
    )


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def as_customer() -> Generator[MagicMock, None, None]:
    """Authenticate requests as a regular customer."""
    with patch("src.api.deps.decode_jwt", return_value=make_token_payload()) as mock_decode:
        yield mock_decode


@pytest.fixture
def as_admin() -> Generator[MagicMock, None, None]:
    """Authenticate requests as an admin."""
    payload = make_token_payload(user_id=ADMIN_ID, role="admin", email="admin@example.com")
    with patch("src.api.deps.decode_jwt", return_value=payload) as mock_decode:
        yield mock_decode


def execute_result(data: Any) -> MagicMock:
    """Build a PostgREST-style execute() result."""
    response = MagicMock()
    response.data = data
    return response
