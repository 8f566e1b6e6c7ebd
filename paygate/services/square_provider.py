"""
Square Payment Gateway Implementation.

Maps internal requests onto the Square API and normalizes what comes back.
The Square client is injected; build_square_client() makes the real one.

NO DICTIONARIES - All data uses strongly typed models.
"""

import base64
import hashlib
import hmac
import json
from typing import Any

from square import AsyncSquare
from square.core.api_error import ApiError
from square.environment import SquareEnvironment

from paygate.config import Settings
from paygate.exceptions import (
    PaymentFailedError,
    PaymentGatewayError,
    UnknownPaymentError,
    WebhookVerificationError,
)
from paygate.models.domain import (
    CardSummary,
    Customer,
    CustomerDetails,
    Lookup,
    NormalizedPayment,
    PaymentRequest,
    PaymentStatus,
    RefundResult,
    utc_now_iso,
)
from paygate.observability import get_logger, metrics, trace_operation, track_vendor_call
from paygate.services.idempotency import new_idempotency_key
from paygate.services.payment_provider import WebhookEvent

logger = get_logger(__name__)

DEFAULT_REFUND_REASON = "Tournament cancellation"


def build_square_client(settings: Settings) -> AsyncSquare:
    """Create the async Square client for the configured environment."""
    environment = (
        SquareEnvironment.PRODUCTION if settings.is_production else SquareEnvironment.SANDBOX
    )
    return AsyncSquare(token=settings.square_access_token, environment=environment)


def verify_webhook_signature(
    body: str | bytes,
    signature: str,
    signature_key: str,
    notification_url: str = "",
) -> bool:
    """
    Check a Square webhook signature.

    The expected signature is base64(HMAC-SHA256(signature_key,
    notification_url + body)). With an empty notification_url only the raw
    body is signed.
    """
    if not signature_key or not signature:
        return False

    raw = body.encode("utf-8") if isinstance(body, str) else body
    message = notification_url.encode("utf-8") + raw
    digest = hmac.new(signature_key.encode("utf-8"), message, hashlib.sha256).digest()
    expected = base64.b64encode(digest)
    return hmac.compare_digest(expected, signature.encode("utf-8"))


def parse_webhook_event(body: str | bytes) -> WebhookEvent:
    """
    Parse a verified Square webhook body.

    Raises:
        WebhookVerificationError: If the body is not a JSON object
    """
    try:
        event = json.loads(body)
    except ValueError as exc:
        logger.error("square_webhook_parsing_failed", error=str(exc))
        raise WebhookVerificationError("Invalid JSON payload") from exc
    if not isinstance(event, dict):
        raise WebhookVerificationError("Webhook payload is not an object")

    data = event.get("data")
    data = data if isinstance(data, dict) else {}
    data_object = data.get("object")
    data_object = data_object if isinstance(data_object, dict) else {}

    payment_id = None
    if data.get("type") == "payment":
        payment_id = data.get("id")
    elif isinstance(data_object.get("refund"), dict):
        payment_id = data_object["refund"].get("payment_id")

    return WebhookEvent(
        event_id=event.get("event_id"),
        event_type=event.get("type"),
        merchant_id=event.get("merchant_id"),
        payment_id=payment_id,
        created_at=event.get("created_at"),
    )


def _first_api_error(exc: ApiError) -> tuple[str | None, str | None]:
    """Return (detail, code) of the first error Square reported, if any."""
    errors: Any = getattr(exc, "errors", None)
    if not errors and isinstance(exc.body, dict):
        errors = exc.body.get("errors")
    if not errors:
        return None, None
    first = errors[0]
    if isinstance(first, dict):
        return first.get("detail"), first.get("code")
    return getattr(first, "detail", None), getattr(first, "code", None)


def _normalize_payment(payment: Any, default_currency: str) -> NormalizedPayment:
    """Map a Square payment object onto NormalizedPayment, filling every gap."""
    money = getattr(payment, "amount_money", None)
    amount = getattr(money, "amount", None) if money is not None else None
    currency = getattr(money, "currency", None) if money is not None else None

    card = None
    card_details = getattr(payment, "card_details", None)
    if card_details is not None:
        vendor_card = getattr(card_details, "card", None)
        card = CardSummary(
            brand=str(getattr(vendor_card, "card_brand", None) or "UNKNOWN"),
            last4=getattr(vendor_card, "last4", None) or "",
            exp_month=int(getattr(vendor_card, "exp_month", None) or 0),
            exp_year=int(getattr(vendor_card, "exp_year", None) or 0),
        )

    now = utc_now_iso()
    return NormalizedPayment(
        id=str(payment.id),
        amount_minor=int(amount or 0),
        currency=str(currency or default_currency),
        status=PaymentStatus.from_vendor(getattr(payment, "status", None)),
        source_type=str(getattr(payment, "source_type", None) or "UNKNOWN"),
        card=card,
        created_at=getattr(payment, "created_at", None) or now,
        updated_at=getattr(payment, "updated_at", None) or now,
    )


def _normalize_customer(customer: Any) -> Customer:
    now = utc_now_iso()
    return Customer(
        id=str(customer.id),
        given_name=getattr(customer, "given_name", None),
        family_name=getattr(customer, "family_name", None),
        email_address=getattr(customer, "email_address", None),
        phone_number=getattr(customer, "phone_number", None),
        created_at=getattr(customer, "created_at", None) or now,
        updated_at=getattr(customer, "updated_at", None) or now,
    )


class SquareProvider:
    """
    Square payment gateway.

    Implements the PaymentGateway protocol. Holds no mutable state between
    calls; every mutating operation makes exactly one Square request and
    never retries.
    """

    def __init__(
        self,
        client: Any,
        location_id: str,
        webhook_signature_key: str,
        default_currency: str = "GBP",
        webhook_notification_url: str = "",
    ) -> None:
        """
        Initialize Square provider.

        Args:
            client: Square client (AsyncSquare, or a fake in tests)
            location_id: Square location that owns subscriptions
            webhook_signature_key: Webhook subscription signature key
            default_currency: Currency used when none is given or returned
            webhook_notification_url: URL Square signs along with the body
        """
        self.client = client
        self.location_id = location_id
        self.webhook_signature_key = webhook_signature_key
        self.default_currency = default_currency
        self.webhook_notification_url = webhook_notification_url

    @classmethod
    def from_settings(cls, settings: Settings, client: Any | None = None) -> "SquareProvider":
        return cls(
            client=client if client is not None else build_square_client(settings),
            location_id=settings.square_location_id,
            webhook_signature_key=settings.square_webhook_signature_key,
            default_currency=settings.default_currency,
            webhook_notification_url=settings.square_webhook_notification_url,
        )

    # ========================================================================
    # Payments
    # ========================================================================

    async def create_payment(self, request: PaymentRequest) -> NormalizedPayment:
        """
        Charge a tokenized card.

        The idempotency key is forwarded unchanged, so retrying with the same
        key asks Square for exactly-once semantics.

        Raises:
            PaymentGatewayError: Square returned a structured error
            PaymentFailedError: Square answered without a payment
            UnknownPaymentError: Any other failure
        """
        body: dict[str, Any] = {
            "source_id": request.source_id,
            "idempotency_key": request.idempotency_key,
            "amount_money": {
                "amount": request.amount_minor,
                "currency": request.currency or self.default_currency,
            },
        }
        if request.note is not None:
            body["note"] = request.note
        if request.reference_id is not None:
            body["reference_id"] = request.reference_id
        if request.buyer_email is not None:
            body["buyer_email_address"] = request.buyer_email

        logger.info(
            "creating_square_payment",
            amount_minor=request.amount_minor,
            currency=request.currency,
            idempotency_key=request.idempotency_key,
        )

        with (
            trace_operation(
                "square.payments.create",
                amount_minor=request.amount_minor,
                idempotency_key=request.idempotency_key,
            ),
            track_vendor_call("create_payment") as tracker,
        ):
            try:
                response = await self.client.payments.create(**body)
            except ApiError as exc:
                detail, code = _first_api_error(exc)
                logger.error(
                    "square_payment_failed",
                    idempotency_key=request.idempotency_key,
                    status_code=exc.status_code,
                    error_code=code,
                    error=detail,
                )
                raise PaymentGatewayError(
                    detail or "Unknown error", code=code, status_code=exc.status_code
                ) from exc
            except Exception as exc:
                logger.error(
                    "square_payment_error",
                    idempotency_key=request.idempotency_key,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise UnknownPaymentError(str(exc) or type(exc).__name__) from exc

            payment = getattr(response, "payment", None)
            if payment is None or not getattr(payment, "id", None):
                tracker.set_outcome("empty")
                logger.error("square_payment_missing", idempotency_key=request.idempotency_key)
                raise PaymentFailedError()

        normalized = _normalize_payment(payment, self.default_currency)
        metrics.payment_amount_minor.observe(normalized.amount_minor)
        logger.info(
            "square_payment_created",
            payment_id=normalized.id,
            status=normalized.status.value,
            idempotency_key=request.idempotency_key,
        )
        return normalized

    async def lookup_payment(self, payment_id: str) -> Lookup[NormalizedPayment]:
        """Fetch a payment. Failures are reported in the result, never raised."""
        with (
            trace_operation("square.payments.get", payment_id=payment_id),
            track_vendor_call("get_payment") as tracker,
        ):
            try:
                response = await self.client.payments.get(payment_id=payment_id)
            except ApiError as exc:
                detail, _ = _first_api_error(exc)
                if exc.status_code == 404:
                    tracker.set_outcome("not_found")
                    return Lookup.missing()
                tracker.set_outcome("error")
                logger.warning(
                    "square_payment_lookup_failed",
                    payment_id=payment_id,
                    status_code=exc.status_code,
                    error=detail,
                )
                return Lookup.failed(detail or f"Square API error {exc.status_code}")
            except Exception as exc:
                tracker.set_outcome("error")
                logger.warning(
                    "square_payment_lookup_failed", payment_id=payment_id, error=str(exc)
                )
                return Lookup.failed(str(exc) or type(exc).__name__)

            payment = getattr(response, "payment", None)
            if payment is None or not getattr(payment, "id", None):
                tracker.set_outcome("not_found")
                return Lookup.missing()

        return Lookup.hit(_normalize_payment(payment, self.default_currency))

    async def get_payment(self, payment_id: str) -> NormalizedPayment | None:
        """Fetch a payment; None when missing or on any failure."""
        return (await self.lookup_payment(payment_id)).value

    async def refund_payment(
        self, payment_id: str, amount_minor: int, reason: str | None = None
    ) -> RefundResult:
        """
        Refund a payment.

        Each call generates its own idempotency key, so two identical calls
        produce two refund attempts.
        """
        idempotency_key = new_idempotency_key("refund", payment_id)
        logger.info(
            "creating_square_refund",
            payment_id=payment_id,
            amount_minor=amount_minor,
            idempotency_key=idempotency_key,
        )

        with (
            trace_operation(
                "square.refunds.refund_payment",
                payment_id=payment_id,
                amount_minor=amount_minor,
                idempotency_key=idempotency_key,
            ),
            track_vendor_call("refund_payment") as tracker,
        ):
            try:
                response = await self.client.refunds.refund_payment(
                    idempotency_key=idempotency_key,
                    amount_money={"amount": amount_minor, "currency": self.default_currency},
                    payment_id=payment_id,
                    reason=reason or DEFAULT_REFUND_REASON,
                )
            except ApiError as exc:
                tracker.set_outcome("error")
                detail, code = _first_api_error(exc)
                logger.error(
                    "square_refund_failed",
                    payment_id=payment_id,
                    error_code=code,
                    error=detail,
                )
                return RefundResult.failed(detail or "Refund failed")
            except Exception as exc:
                tracker.set_outcome("error")
                logger.error("square_refund_error", payment_id=payment_id, error=str(exc))
                return RefundResult.failed("Unknown error occurred")

            refund = getattr(response, "refund", None)
            if refund is None or not getattr(refund, "id", None):
                tracker.set_outcome("empty")
                return RefundResult.failed("Refund creation failed")

        metrics.refund_amount_minor.observe(amount_minor)
        logger.info("square_refund_created", payment_id=payment_id, refund_id=refund.id)
        return RefundResult.succeeded(refund.id)

    # ========================================================================
    # Customers & Subscriptions
    # ========================================================================

    async def create_customer(self, details: CustomerDetails) -> Customer | None:
        """Create a customer profile; None on any failure."""
        fields = {
            "given_name": details.given_name,
            "family_name": details.family_name,
            "email_address": details.email_address,
            "phone_number": details.phone_number,
        }
        with (
            trace_operation("square.customers.create"),
            track_vendor_call("create_customer") as tracker,
        ):
            try:
                response = await self.client.customers.create(
                    **{key: value for key, value in fields.items() if value is not None}
                )
            except Exception as exc:
                tracker.set_outcome("error")
                logger.error("square_customer_create_failed", error=str(exc))
                return None

            customer = getattr(response, "customer", None)
            if customer is None or not getattr(customer, "id", None):
                tracker.set_outcome("empty")
                return None

        logger.info("square_customer_created", customer_id=customer.id)
        return _normalize_customer(customer)

    async def lookup_customer(self, customer_id: str) -> Lookup[Customer]:
        """Fetch a customer. Failures are reported in the result, never raised."""
        with (
            trace_operation("square.customers.get", customer_id=customer_id),
            track_vendor_call("get_customer") as tracker,
        ):
            try:
                response = await self.client.customers.get(customer_id=customer_id)
            except ApiError as exc:
                if exc.status_code == 404:
                    tracker.set_outcome("not_found")
                    return Lookup.missing()
                tracker.set_outcome("error")
                detail, _ = _first_api_error(exc)
                logger.warning(
                    "square_customer_lookup_failed",
                    customer_id=customer_id,
                    status_code=exc.status_code,
                    error=detail,
                )
                return Lookup.failed(detail or f"Square API error {exc.status_code}")
            except Exception as exc:
                tracker.set_outcome("error")
                logger.warning(
                    "square_customer_lookup_failed", customer_id=customer_id, error=str(exc)
                )
                return Lookup.failed(str(exc) or type(exc).__name__)

            customer = getattr(response, "customer", None)
            if customer is None or not getattr(customer, "id", None):
                tracker.set_outcome("not_found")
                return Lookup.missing()

        return Lookup.hit(_normalize_customer(customer))

    async def get_customer(self, customer_id: str) -> Customer | None:
        """Fetch a customer; None when missing or on any failure."""
        return (await self.lookup_customer(customer_id)).value

    async def create_subscription(self, customer_id: str, plan_id: str) -> str | None:
        """Start a monthly membership subscription; None on any failure."""
        idempotency_key = new_idempotency_key("subscription", customer_id)
        with (
            trace_operation(
                "square.subscriptions.create", customer_id=customer_id, plan_id=plan_id
            ),
            track_vendor_call("create_subscription") as tracker,
        ):
            try:
                response = await self.client.subscriptions.create(
                    idempotency_key=idempotency_key,
                    location_id=self.location_id,
                    customer_id=customer_id,
                    plan_variation_id=plan_id,
                )
            except Exception as exc:
                tracker.set_outcome("error")
                logger.error(
                    "square_subscription_failed",
                    customer_id=customer_id,
                    plan_id=plan_id,
                    error=str(exc),
                )
                return None

            subscription = getattr(response, "subscription", None)
            subscription_id: str | None = getattr(subscription, "id", None)
            if not subscription_id:
                tracker.set_outcome("empty")
                return None

        logger.info(
            "square_subscription_created",
            customer_id=customer_id,
            subscription_id=subscription_id,
        )
        return subscription_id

    # ========================================================================
    # Webhooks
    # ========================================================================

    def verify_webhook(self, body: str | bytes, signature: str) -> bool:
        """Check a webhook signature with the configured key and URL."""
        valid = verify_webhook_signature(
            body,
            signature,
            self.webhook_signature_key,
            self.webhook_notification_url,
        )
        metrics.record_webhook_verification(valid)
        if not valid:
            logger.warning("square_webhook_signature_invalid", signature_present=bool(signature))
        return valid
