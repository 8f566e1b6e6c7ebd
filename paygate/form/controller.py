"""
Payment Form Controller - Coordinates the Square card widget and the backend.

Loads the Web Payments SDK, attaches the card input and card button,
tokenizes card data and posts the token to POST /api/payments/{gateway}.
Results are reported through the on_success / on_error callbacks.

All work runs on one event loop. submit() moves to SUBMITTING before its
first await, so a second click while a submission is running is rejected.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from paygate.config import SANDBOX_SCRIPT_URL, Settings
from paygate.exceptions import ValidationFailedError
from paygate.form.sdk import CARD_BUTTON_OPTIONS, CARD_OPTIONS, PaymentWidget, WebPaymentsSDK
from paygate.form.state import FormState, validate_transition
from paygate.observability import get_logger
from paygate.services.idempotency import new_idempotency_key

logger = get_logger(__name__)

SDK_LOAD_FAILED = "Square SDK failed to load"
INIT_FAILED = "Failed to initialize payment form"
NOT_READY = "Payment form not ready"
CARD_VALIDATION_FAILED = "Card validation failed"
PAYMENT_FAILED = "Payment failed"
PROCESSING_FAILED = "Payment processing failed"


@dataclass(frozen=True)
class FormConfig:
    """What the form charges and where it mounts."""

    application_id: str
    location_id: str
    amount_minor: int
    description: str
    script_url: str = SANDBOX_SCRIPT_URL
    gateway: str = "square"
    card_selector: str = "#card-container"
    card_button_selector: str = "#card-button-container"

    def __post_init__(self) -> None:
        if self.amount_minor <= 0:
            raise ValueError(f"Payment amount must be positive: {self.amount_minor}")

    @classmethod
    def from_settings(
        cls, settings: Settings, amount_minor: int, description: str
    ) -> "FormConfig":
        return cls(
            application_id=settings.square_application_id,
            location_id=settings.square_location_id,
            amount_minor=amount_minor,
            description=description,
            script_url=settings.web_payments_script_url,
        )

    @property
    def endpoint(self) -> str:
        return f"/api/payments/{self.gateway}"


class PaymentFormController:
    """
    State machine behind the payment form.

    Uninitialized -> Loading -> Ready -> Submitting -> Succeeded, with
    Loading -> Failed when the SDK cannot be loaded or initialized and
    Submitting -> Ready for recoverable errors.
    """

    def __init__(
        self,
        sdk: WebPaymentsSDK,
        http_client: httpx.AsyncClient,
        config: FormConfig,
        on_success: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None:
        """
        Args:
            sdk: Web Payments SDK binding
            http_client: Client whose base_url points at the payments API
            config: Amount, description and mount points
            on_success: Called with the payment id once the charge succeeds
            on_error: Called with a message the buyer can read
        """
        self.sdk = sdk
        self.http_client = http_client
        self.config = config
        self.on_success = on_success
        self.on_error = on_error

        self._state = FormState.UNINITIALIZED
        self._card: PaymentWidget | None = None
        self._card_button: PaymentWidget | None = None
        self._script_loaded = False
        self._unmounted = False
        self._inflight: asyncio.Task[None] | None = None

    @property
    def state(self) -> FormState:
        return self._state

    def _transition(self, new: FormState) -> None:
        validate_transition(self._state, new)
        logger.debug("payment_form_transition", current=self._state.value, new=new.value)
        self._state = new

    def _emit_error(self, message: str) -> None:
        if self._unmounted:
            logger.info("payment_form_callback_suppressed", message=message)
            return
        self.on_error(message)

    def _emit_success(self, payment_id: str) -> None:
        if self._unmounted:
            logger.info("payment_form_callback_suppressed", payment_id=payment_id)
            return
        self.on_success(payment_id)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def mount(self) -> None:
        """
        Load the SDK and attach both widgets. Never retries.

        If unmount() runs while this is still awaiting the SDK, whatever was
        loaded or attached by then is released again and the mount stops.
        """
        self._transition(FormState.LOADING)

        try:
            await self.sdk.load(self.config.script_url)
            self._script_loaded = True
        except Exception as exc:
            logger.error(
                "square_sdk_load_failed", script_url=self.config.script_url, error=str(exc)
            )
            self._transition(FormState.FAILED)
            self._emit_error(SDK_LOAD_FAILED)
            return

        if await self._abandon_mount():
            return

        try:
            payments = self.sdk.payments(self.config.application_id, self.config.location_id)

            card = await payments.card(CARD_OPTIONS)
            self._card = card
            await card.attach(self.config.card_selector)
            if await self._abandon_mount():
                return

            card_button = await payments.card_button(CARD_BUTTON_OPTIONS)
            self._card_button = card_button
            await card_button.attach(self.config.card_button_selector)
        except Exception as exc:
            logger.error("square_sdk_init_failed", error=str(exc), error_type=type(exc).__name__)
            self._transition(FormState.FAILED)
            self._emit_error(INIT_FAILED)
            await self._abandon_mount()
            return

        if await self._abandon_mount():
            return

        self._transition(FormState.READY)
        logger.info("payment_form_ready", amount_minor=self.config.amount_minor)

    async def _abandon_mount(self) -> bool:
        """Release what a mount overtaken by unmount() left behind."""
        if not self._unmounted:
            return False
        logger.info("payment_form_mount_abandoned", state=self._state.value)
        await self._release()
        return True

    async def unmount(self) -> None:
        """
        Tear the form down.

        Cancels a submission still in flight and suppresses every callback
        that would arrive afterwards.
        """
        self._unmounted = True

        if self._inflight is not None and not self._inflight.done():
            logger.info("payment_form_submission_cancelled")
            self._inflight.cancel()

        await self._release()

    async def _release(self) -> None:
        widgets = (self._card, self._card_button)
        self._card = None
        self._card_button = None
        for widget in widgets:
            if widget is None:
                continue
            try:
                await widget.destroy()
            except Exception as exc:
                logger.warning("payment_widget_destroy_failed", error=str(exc))

        if self._script_loaded:
            self._script_loaded = False
            await self.sdk.unload()

    async def reset(self) -> None:
        """Unmount if needed and go back to Uninitialized for a fresh mount()."""
        if not self._unmounted:
            await self.unmount()
        self._inflight = None
        self._unmounted = False
        self._state = FormState.UNINITIALIZED

    # ========================================================================
    # Submission
    # ========================================================================

    async def submit(self) -> None:
        """Tokenize the card and charge it. Only has an effect from Ready."""
        if self._state != FormState.READY or self._card is None or self._card_button is None:
            self._emit_error(NOT_READY)
            return

        self._transition(FormState.SUBMITTING)
        self._inflight = asyncio.create_task(self._process_submission())
        try:
            await self._inflight
        except asyncio.CancelledError:
            if not self._unmounted:
                raise

    async def _tokenize(self) -> str:
        """
        Tokenize the card input.

        Raises:
            ValidationFailedError: The widget rejected the card details
        """
        assert self._card is not None
        result = await self._card.tokenize()
        if not result.ok:
            raise ValidationFailedError(result.first_error or CARD_VALIDATION_FAILED)
        return str(result.token)

    async def _process_submission(self) -> None:
        try:
            token = await self._tokenize()
        except ValidationFailedError as exc:
            logger.info("card_validation_failed", error=exc.message)
            self._recover(exc.message)
            return
        except Exception as exc:
            logger.error("card_tokenize_failed", error=str(exc))
            self._recover(PROCESSING_FAILED)
            return

        idempotency_key = new_idempotency_key("payment")
        payload = {
            "sourceId": token,
            "amount": self.config.amount_minor,
            "description": self.config.description,
            "idempotencyKey": idempotency_key,
        }

        try:
            response = await self.http_client.post(self.config.endpoint, json=payload)
        except Exception as exc:
            logger.error(
                "payment_request_failed",
                idempotency_key=idempotency_key,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._recover(PROCESSING_FAILED)
            return

        result = _json_object(response)
        payment_id = result.get("paymentId")
        if response.is_success and result.get("success") is True and payment_id:
            self._transition(FormState.SUCCEEDED)
            logger.info("payment_form_succeeded", payment_id=payment_id)
            self._emit_success(str(payment_id))
            return

        logger.warning(
            "payment_rejected",
            idempotency_key=idempotency_key,
            status_code=response.status_code,
            error=result.get("error"),
        )
        self._recover(str(result.get("error") or PAYMENT_FAILED))

    def _recover(self, message: str) -> None:
        """Return to Ready after a recoverable error and tell the buyer."""
        self._transition(FormState.READY)
        self._emit_error(message)


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
