"""
Tests for PaymentFormController.

The Web Payments SDK is replaced with in-memory fakes and the payments API
with an httpx.MockTransport, so every scenario runs on one event loop.
"""

import asyncio
import json

import httpx
import pytest

from paygate.config import PRODUCTION_SCRIPT_URL, SANDBOX_SCRIPT_URL, Settings
from paygate.form import (
    FormConfig,
    FormState,
    PaymentFormController,
    ScriptLoadError,
    TokenError,
    TokenResult,
)
from paygate.form.controller import (
    CARD_VALIDATION_FAILED,
    INIT_FAILED,
    NOT_READY,
    PAYMENT_FAILED,
    PROCESSING_FAILED,
    SDK_LOAD_FAILED,
)
from paygate.form.sdk import CARD_BUTTON_OPTIONS, CARD_OPTIONS

# ============================================================================
# Fakes
# ============================================================================


class FakeWidget:
    """Card input or card button."""

    def __init__(self, attach_error: Exception | None = None) -> None:
        self.attach_error = attach_error
        self.attached_to: str | None = None
        self.destroyed = False
        self.token_results: list[TokenResult | Exception] = []
        self.tokenize_calls = 0
        self.attaching = asyncio.Event()
        self.release_attach: asyncio.Event | None = None

    async def attach(self, selector: str) -> None:
        self.attaching.set()
        if self.release_attach is not None:
            await self.release_attach.wait()
        if self.attach_error is not None:
            raise self.attach_error
        self.attached_to = selector

    async def tokenize(self) -> TokenResult:
        self.tokenize_calls += 1
        result = self.token_results.pop(0) if self.token_results else TokenResult("OK", "tok_1")
        if isinstance(result, Exception):
            raise result
        return result

    async def destroy(self) -> None:
        self.destroyed = True


class FakePayments:
    def __init__(self, card: FakeWidget, card_button: FakeWidget) -> None:
        self.card_widget = card
        self.card_button_widget = card_button
        self.card_options: dict | None = None
        self.card_button_options: dict | None = None

    async def card(self, options: dict) -> FakeWidget:
        self.card_options = options
        return self.card_widget

    async def card_button(self, options: dict) -> FakeWidget:
        self.card_button_options = options
        return self.card_button_widget


class FakeSDK:
    def __init__(self) -> None:
        self.card = FakeWidget()
        self.card_button = FakeWidget()
        self.client = FakePayments(self.card, self.card_button)
        self.load_errors: list[Exception | None] = []
        self.loaded_urls: list[str] = []
        self.unload_calls = 0
        self.payments_args: tuple[str, str] | None = None
        self.loading = asyncio.Event()
        self.release_load: asyncio.Event | None = None

    async def load(self, script_url: str) -> None:
        self.loaded_urls.append(script_url)
        self.loading.set()
        if self.release_load is not None:
            await self.release_load.wait()
        error = self.load_errors.pop(0) if self.load_errors else None
        if error is not None:
            raise error

    async def unload(self) -> None:
        self.unload_calls += 1

    def payments(self, application_id: str, location_id: str) -> FakePayments:
        self.payments_args = (application_id, location_id)
        return self.client


class PaymentsAPI:
    """Records requests to the payments endpoint and answers with a canned response."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: object = {"success": True, "paymentId": "pay_9", "status": "completed"}
        self.error: Exception | None = None
        self.received = asyncio.Event()
        self.release: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.received.set()
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        if isinstance(self.body, str):
            return httpx.Response(self.status_code, text=self.body)
        return httpx.Response(self.status_code, json=self.body)

    def payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


class Harness:
    def __init__(self) -> None:
        self.sdk = FakeSDK()
        self.api = PaymentsAPI()
        self.successes: list[str] = []
        self.errors: list[str] = []
        self.config = FormConfig(
            application_id="sandbox-sq0idb-test",
            location_id="L_TEST_LOCATION",
            amount_minor=2500,
            description="Spring Cup entry",
        )
        self.http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.api.handler), base_url="http://test"
        )
        self.controller = PaymentFormController(
            sdk=self.sdk,
            http_client=self.http_client,
            config=self.config,
            on_success=self.successes.append,
            on_error=self.errors.append,
        )


@pytest.fixture
def harness() -> Harness:
    return Harness()


# ============================================================================
# Mounting
# ============================================================================


class TestMount:
    """Tests for Uninitialized -> Loading -> Ready/Failed."""

    def test_starts_uninitialized(self, harness):
        assert harness.controller.state == FormState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_mount_reaches_ready(self, harness):
        await harness.controller.mount()

        assert harness.controller.state == FormState.READY
        assert harness.sdk.loaded_urls == [SANDBOX_SCRIPT_URL]
        assert harness.sdk.payments_args == ("sandbox-sq0idb-test", "L_TEST_LOCATION")
        assert harness.sdk.card.attached_to == "#card-container"
        assert harness.sdk.card_button.attached_to == "#card-button-container"
        assert harness.sdk.client.card_options == CARD_OPTIONS
        assert harness.sdk.client.card_button_options == CARD_BUTTON_OPTIONS
        assert harness.errors == []

    @pytest.mark.asyncio
    async def test_script_load_failure(self, harness):
        """Load failure is terminal and not retried."""
        harness.sdk.load_errors = [ScriptLoadError("network")]

        await harness.controller.mount()

        assert harness.controller.state == FormState.FAILED
        assert harness.errors == [SDK_LOAD_FAILED]
        assert harness.sdk.loaded_urls == [SANDBOX_SCRIPT_URL]
        assert harness.sdk.payments_args is None

    @pytest.mark.asyncio
    async def test_card_attach_failure(self, harness):
        harness.sdk.card.attach_error = RuntimeError("no such element")

        await harness.controller.mount()

        assert harness.controller.state == FormState.FAILED
        assert harness.errors == [INIT_FAILED]

    @pytest.mark.asyncio
    async def test_card_button_attach_failure(self, harness):
        """Ready needs both widgets."""
        harness.sdk.card_button.attach_error = RuntimeError("button unavailable")

        await harness.controller.mount()

        assert harness.controller.state == FormState.FAILED
        assert harness.errors == [INIT_FAILED]

    @pytest.mark.asyncio
    async def test_mount_twice_is_rejected(self, harness):
        await harness.controller.mount()

        with pytest.raises(ValueError):
            await harness.controller.mount()


# ============================================================================
# Submission
# ============================================================================


class TestSubmit:
    """Tests for Ready -> Submitting -> Succeeded/Ready."""

    @pytest.mark.asyncio
    async def test_successful_payment(self, harness):
        """tok_1 is posted and pay_9 reaches the success callback."""
        await harness.controller.mount()

        await harness.controller.submit()

        assert harness.controller.state == FormState.SUCCEEDED
        assert harness.successes == ["pay_9"]
        assert harness.errors == []

        assert len(harness.api.requests) == 1
        request = harness.api.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/payments/square"
        payload = harness.api.payloads()[0]
        assert payload["sourceId"] == "tok_1"
        assert payload["amount"] == 2500
        assert payload["description"] == "Spring Cup entry"
        assert payload["idempotencyKey"].startswith("payment_")
        assert len(payload["idempotencyKey"]) <= 45

    @pytest.mark.asyncio
    async def test_tokenize_error_is_recoverable(self, harness):
        """A declined card goes back to Ready with the widget's message."""
        await harness.controller.mount()
        harness.sdk.card.token_results = [
            TokenResult("ERROR", errors=(TokenError("Card declined"), TokenError("Other")))
        ]

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == ["Card declined"]
        assert harness.successes == []
        assert harness.api.requests == []

    @pytest.mark.asyncio
    async def test_tokenize_error_without_message(self, harness):
        await harness.controller.mount()
        harness.sdk.card.token_results = [TokenResult("INVALID")]

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == [CARD_VALIDATION_FAILED]

    @pytest.mark.asyncio
    async def test_tokenize_raising(self, harness):
        await harness.controller.mount()
        harness.sdk.card.token_results = [RuntimeError("widget crashed")]

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == [PROCESSING_FAILED]

    @pytest.mark.asyncio
    async def test_rejected_payment_shows_server_error(self, harness):
        await harness.controller.mount()
        harness.api.status_code = 402
        harness.api.body = {"success": False, "error": "Payment failed: Card declined."}

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == ["Payment failed: Card declined."]
        assert harness.successes == []

    @pytest.mark.asyncio
    async def test_non_json_error_response(self, harness):
        await harness.controller.mount()
        harness.api.status_code = 500
        harness.api.body = "Internal Server Error"

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == [PAYMENT_FAILED]

    @pytest.mark.asyncio
    async def test_success_status_without_payment_id(self, harness):
        """A 2xx answer is only a success when it carries a payment id."""
        await harness.controller.mount()
        harness.api.body = {"success": True}

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == [PAYMENT_FAILED]

    @pytest.mark.asyncio
    async def test_transport_error(self, harness):
        await harness.controller.mount()
        harness.api.error = httpx.ConnectError("connection refused")

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == [PROCESSING_FAILED]

    @pytest.mark.asyncio
    async def test_unexpected_request_error(self, harness):
        """Errors outside httpx.HTTPError still leave the form usable."""
        await harness.controller.mount()
        harness.api.error = RuntimeError("transport exploded")

        await harness.controller.submit()

        assert harness.controller.state == FormState.READY
        assert harness.errors == [PROCESSING_FAILED]

    @pytest.mark.asyncio
    async def test_retry_after_failure_uses_new_key(self, harness):
        await harness.controller.mount()
        harness.api.status_code = 402
        harness.api.body = {"success": False, "error": "Payment failed: Card declined."}
        await harness.controller.submit()

        harness.api.status_code = 200
        harness.api.body = {"success": True, "paymentId": "pay_10"}
        await harness.controller.submit()

        assert harness.controller.state == FormState.SUCCEEDED
        assert harness.successes == ["pay_10"]
        first, second = harness.api.payloads()
        assert first["idempotencyKey"] != second["idempotencyKey"]

    @pytest.mark.asyncio
    async def test_submit_before_mount(self, harness):
        await harness.controller.submit()

        assert harness.controller.state == FormState.UNINITIALIZED
        assert harness.errors == [NOT_READY]
        assert harness.sdk.card.tokenize_calls == 0

    @pytest.mark.asyncio
    async def test_submit_after_load_failure(self, harness):
        harness.sdk.load_errors = [ScriptLoadError("network")]
        await harness.controller.mount()

        await harness.controller.submit()

        assert harness.controller.state == FormState.FAILED
        assert harness.errors == [SDK_LOAD_FAILED, NOT_READY]

    @pytest.mark.asyncio
    async def test_second_click_while_submitting(self, harness):
        """Only one tokenize and one request per Ready state."""
        await harness.controller.mount()
        harness.api.release = asyncio.Event()

        first = asyncio.create_task(harness.controller.submit())
        await harness.api.received.wait()
        assert harness.controller.state == FormState.SUBMITTING

        await harness.controller.submit()
        assert harness.errors == [NOT_READY]

        harness.api.release.set()
        await first

        assert harness.controller.state == FormState.SUCCEEDED
        assert harness.sdk.card.tokenize_calls == 1
        assert len(harness.api.requests) == 1


# ============================================================================
# Unmount & Reset
# ============================================================================


class TestUnmount:
    """Tests for teardown and cancellation."""

    @pytest.mark.asyncio
    async def test_unmount_releases_everything(self, harness):
        await harness.controller.mount()

        await harness.controller.unmount()

        assert harness.sdk.unload_calls == 1
        assert harness.sdk.card.destroyed is True
        assert harness.sdk.card_button.destroyed is True

    @pytest.mark.asyncio
    async def test_unmount_without_script(self, harness):
        harness.sdk.load_errors = [ScriptLoadError("network")]
        await harness.controller.mount()

        await harness.controller.unmount()

        assert harness.sdk.unload_calls == 0

    @pytest.mark.asyncio
    async def test_unmount_while_script_loading(self, harness):
        """A script that finishes loading after unmount is unloaded again."""
        harness.sdk.release_load = asyncio.Event()
        mounting = asyncio.create_task(harness.controller.mount())
        await harness.sdk.loading.wait()

        await harness.controller.unmount()
        harness.sdk.release_load.set()
        await mounting

        assert harness.sdk.unload_calls == 1
        assert harness.sdk.payments_args is None
        assert harness.sdk.card.attached_to is None
        assert harness.controller.state == FormState.LOADING
        assert harness.errors == []

    @pytest.mark.asyncio
    async def test_unmount_while_card_attaching(self, harness):
        harness.sdk.card.release_attach = asyncio.Event()
        mounting = asyncio.create_task(harness.controller.mount())
        await harness.sdk.card.attaching.wait()

        await harness.controller.unmount()
        harness.sdk.card.release_attach.set()
        await mounting

        assert harness.sdk.unload_calls == 1
        assert harness.sdk.card.destroyed is True
        assert harness.sdk.card_button.attached_to is None
        assert harness.controller.state == FormState.LOADING

    @pytest.mark.asyncio
    async def test_unmount_while_card_button_attaching(self, harness):
        harness.sdk.card_button.release_attach = asyncio.Event()
        mounting = asyncio.create_task(harness.controller.mount())
        await harness.sdk.card_button.attaching.wait()

        await harness.controller.unmount()
        harness.sdk.card_button.release_attach.set()
        await mounting

        assert harness.sdk.unload_calls == 1
        assert harness.sdk.card.destroyed is True
        assert harness.sdk.card_button.destroyed is True
        assert harness.controller.state == FormState.LOADING
        assert harness.successes == []
        assert harness.errors == []

    @pytest.mark.asyncio
    async def test_unmount_cancels_inflight_submission(self, harness):
        """No callback fires once the form is gone."""
        await harness.controller.mount()
        harness.api.release = asyncio.Event()

        submission = asyncio.create_task(harness.controller.submit())
        await harness.api.received.wait()

        await harness.controller.unmount()
        await submission

        assert harness.successes == []
        assert harness.errors == []
        assert harness.controller.state == FormState.SUBMITTING

    @pytest.mark.asyncio
    async def test_errors_after_unmount_are_suppressed(self, harness):
        await harness.controller.mount()
        await harness.controller.unmount()

        await harness.controller.submit()

        assert harness.errors == []

    @pytest.mark.asyncio
    async def test_reset_allows_remount(self, harness):
        harness.sdk.load_errors = [ScriptLoadError("network"), None]
        await harness.controller.mount()
        assert harness.controller.state == FormState.FAILED

        await harness.controller.reset()
        assert harness.controller.state == FormState.UNINITIALIZED

        await harness.controller.mount()
        assert harness.controller.state == FormState.READY

        await harness.controller.submit()
        assert harness.successes == ["pay_9"]

    @pytest.mark.asyncio
    async def test_reset_after_success(self, harness):
        await harness.controller.mount()
        await harness.controller.submit()

        await harness.controller.reset()

        assert harness.controller.state == FormState.UNINITIALIZED
        assert harness.sdk.unload_calls == 1


# ============================================================================
# FormConfig
# ============================================================================


class TestFormConfig:
    def test_endpoint(self):
        config = FormConfig(
            application_id="app", location_id="loc", amount_minor=100, description="x"
        )
        assert config.endpoint == "/api/payments/square"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValueError):
            FormConfig(
                application_id="app", location_id="loc", amount_minor=amount, description="x"
            )

    def test_from_settings(self, test_settings):
        config = FormConfig.from_settings(test_settings, amount_minor=2500, description="Entry")

        assert config.application_id == "sandbox-sq0idb-test"
        assert config.location_id == "L_TEST_LOCATION"
        assert config.script_url == SANDBOX_SCRIPT_URL

    def test_from_production_settings(self, test_settings):
        settings = Settings(
            **{**test_settings.model_dump(), "square_environment": "production"},
            _env_file=None,
        )

        config = FormConfig.from_settings(settings, amount_minor=2500, description="Entry")

        assert config.script_url == PRODUCTION_SCRIPT_URL
