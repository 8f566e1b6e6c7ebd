"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes and fixtures for testing:
- Settings built without touching the environment
- A fake Square client whose APIs are AsyncMocks
- Square payment/customer objects with realistic fields
- A FastAPI app wired to the fake client, plus an async HTTP client for it
"""

import os
from collections.abc import AsyncGenerator, Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("SQUARE_APPLICATION_ID", "sandbox-sq0idb-test")
os.environ.setdefault("SQUARE_LOCATION_ID", "L_TEST_LOCATION")
os.environ.setdefault("SQUARE_ACCESS_TOKEN", "EAAA_test_token")
os.environ.setdefault("SQUARE_ENVIRONMENT", "sandbox")
os.environ.setdefault("SQUARE_WEBHOOK_SIGNATURE_KEY", "whsec_test")
os.environ.setdefault("TRACING_ENABLED", "false")

from paygate.config import Settings
from paygate.main import create_app
from paygate.models.domain import PaymentRequest
from paygate.services.square_provider import SquareProvider

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings for a sandbox deployment."""
    return Settings(
        square_application_id="sandbox-sq0idb-test",
        square_location_id="L_TEST_LOCATION",
        square_access_token="EAAA_test_token",
        square_environment="sandbox",
        square_webhook_signature_key="whsec_test",
        tracing_enabled=False,
        log_format="console",
        _env_file=None,
    )


# ============================================================================
# Tracing Fixtures
# ============================================================================

_span_exporter = InMemorySpanExporter()


@pytest.fixture
def span_exporter() -> Generator[InMemorySpanExporter, None, None]:
    """
    Collect finished spans in memory.

    The global tracer provider can only be set once per process, so the first
    use installs an SDK provider feeding this exporter and later uses reuse it.
    """
    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(_span_exporter))
        trace.set_tracer_provider(provider)
    _span_exporter.clear()
    yield _span_exporter
    _span_exporter.clear()


# ============================================================================
# Square Object Factories
# ============================================================================


def make_square_payment(**overrides: Any) -> SimpleNamespace:
    """Square Payment object with every field populated."""
    fields: dict[str, Any] = {
        "id": "pay_9",
        "amount_money": SimpleNamespace(amount=2500, currency="GBP"),
        "status": "COMPLETED",
        "source_type": "CARD",
        "card_details": SimpleNamespace(
            card=SimpleNamespace(card_brand="VISA", last4="1111", exp_month=12, exp_year=2030)
        ),
        "created_at": "2025-03-01T12:00:00.000Z",
        "updated_at": "2025-03-01T12:00:01.000Z",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_square_customer(**overrides: Any) -> SimpleNamespace:
    """Square Customer object."""
    fields: dict[str, Any] = {
        "id": "CUST_1",
        "given_name": "Ada",
        "family_name": "Lovelace",
        "email_address": "ada@example.com",
        "phone_number": "+447700900123",
        "created_at": "2025-03-01T12:00:00.000Z",
        "updated_at": "2025-03-01T12:00:00.000Z",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def square_api_error(status_code: int, detail: str | None, code: str = "GENERIC_DECLINE"):
    """ApiError as raised by the Square SDK for a 4xx/5xx response."""
    from square.core.api_error import ApiError

    errors = []
    if detail is not None:
        errors.append({"category": "PAYMENT_METHOD_ERROR", "code": code, "detail": detail})
    return ApiError(status_code=status_code, body={"errors": errors})


# ============================================================================
# Square Client Fixtures
# ============================================================================


@pytest.fixture
def square_client() -> MagicMock:
    """Fake AsyncSquare client; each API method is an AsyncMock."""
    client = MagicMock()
    client.payments.create = AsyncMock(
        return_value=SimpleNamespace(payment=make_square_payment(), errors=None)
    )
    client.payments.get = AsyncMock(
        return_value=SimpleNamespace(payment=make_square_payment(), errors=None)
    )
    client.refunds.refund_payment = AsyncMock(
        return_value=SimpleNamespace(refund=SimpleNamespace(id="refund_1"), errors=None)
    )
    client.customers.create = AsyncMock(
        return_value=SimpleNamespace(customer=make_square_customer(), errors=None)
    )
    client.customers.get = AsyncMock(
        return_value=SimpleNamespace(customer=make_square_customer(), errors=None)
    )
    client.subscriptions.create = AsyncMock(
        return_value=SimpleNamespace(subscription=SimpleNamespace(id="SUB_1"), errors=None)
    )
    return client


@pytest.fixture
def provider(square_client: MagicMock) -> SquareProvider:
    """SquareProvider wired to the fake client."""
    return SquareProvider(
        client=square_client,
        location_id="L_TEST_LOCATION",
        webhook_signature_key="whsec_test",
    )


@pytest.fixture
def payment_request() -> PaymentRequest:
    """Standard £25.00 tournament entry charge."""
    return PaymentRequest(
        amount_minor=2500,
        source_id="tok_1",
        idempotency_key="payment_1718000000000_abc123",
        note="Spring Cup entry",
        reference_id="reg-42",
        buyer_email="player@example.com",
    )


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def app(test_settings: Settings, provider: SquareProvider) -> FastAPI:
    """FastAPI app serving the provider backed by the fake Square client."""
    return create_app(test_settings, payment_gateway=provider)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async test client for async tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest.fixture
def square_payment_factory():
    """Factory for Square Payment objects."""
    return make_square_payment


@pytest.fixture
def square_customer_factory():
    """Factory for Square Customer objects."""
    return make_square_customer


@pytest.fixture
def api_error_factory():
    """Factory for Square ApiError exceptions."""
    return square_api_error
