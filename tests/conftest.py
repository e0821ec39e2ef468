"""
Pytest configuration and fixtures.
"""

import sys
import os
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add package to path
sys.path.append(os.getcwd())

from nepali_payment.config import Settings
from nepali_payment.database import Base
from nepali_payment.fsm.states import Gateway
from nepali_payment.gateways.base import GatewayClient, GatewayResponse
from nepali_payment.gateways.registry import GatewayRegistry
import nepali_payment.models  # noqa: F401

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FakeGateway(GatewayClient):
    """Gateway client returning canned responses and recording calls."""

    def __init__(
        self,
        gateway: Gateway = Gateway.KHALTI,
        payment_response: Optional[GatewayResponse] = None,
        verify_response: Optional[GatewayResponse] = None,
    ):
        self.gateway = gateway
        self.payment_response = payment_response or GatewayResponse(True, {"pidx": "pidx_123"})
        self.verify_response = verify_response or GatewayResponse(True, {"status": "Completed"})
        self.payment_calls: List[Dict[str, Any]] = []
        self.verify_calls: List[Dict[str, Any]] = []
        self.closed = False

    async def payment(self, data: Dict[str, Any]) -> GatewayResponse:
        self.payment_calls.append(data)
        return self.payment_response

    async def verify(self, data: Dict[str, Any]) -> GatewayResponse:
        self.verify_calls.append(data)
        return self.verify_response

    async def aclose(self) -> None:
        self.closed = True


def make_settings(**overrides: Any) -> Settings:
    """Fully configured settings that ignore any local .env file."""
    values: Dict[str, Any] = {
        "database_enabled": True,
        "esewa_product_code": "EPAYTEST",
        "esewa_secret_key": "8gBm/:&EnhH.1/q",
        "esewa_success_url": "https://shop.example/esewa/success",
        "esewa_failure_url": "https://shop.example/esewa/failure",
        "khalti_secret_key": "test_secret_key",
        "khalti_success_url": "https://shop.example/khalti/return",
        "khalti_website_url": "https://shop.example",
        "connectips_merchant_id": "123",
        "connectips_app_id": "MER-123-APP-1",
        "connectips_app_name": "Shop",
        "connectips_private_key_path": "/nonexistent/connectips.pem",
        "connectips_password": "secret",
        "connectips_return_url": "https://shop.example/connectips/return",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_khalti() -> FakeGateway:
    return FakeGateway(Gateway.KHALTI)


@pytest.fixture
def registry(settings, fake_khalti) -> GatewayRegistry:
    """Registry whose Khalti client is a fake."""
    return GatewayRegistry(settings, builders={Gateway.KHALTI: lambda _: fake_khalti})


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()
