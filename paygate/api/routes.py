"""
API Routes - FastAPI endpoints for payments, customers and webhooks.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from paygate.api.dependencies import get_app_settings, get_payment_gateway
from paygate.config import Settings
from paygate.exceptions import (
    PaymentFailedError,
    PaymentGatewayError,
    UnknownPaymentError,
    WebhookVerificationError,
)
from paygate.models.api import (
    CreateCustomerBody,
    CreatePaymentBody,
    CreateSubscriptionBody,
    CustomerResponse,
    PaymentDetailResponse,
    PaymentOutcomeResponse,
    RefundBody,
    RefundResponse,
    SubscriptionResponse,
    WebhookAck,
)
from paygate.models.domain import CustomerDetails, LookupOutcome, PaymentRequest
from paygate.observability import get_logger, log_context
from paygate.services.payment_provider import PaymentGateway
from paygate.services.square_provider import parse_webhook_event

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

SUPPORTED_GATEWAYS = frozenset({"square"})
SIGNATURE_HEADER = "x-square-hmacsha256-signature"


def _require_gateway(gateway: str) -> None:
    if gateway not in SUPPORTED_GATEWAYS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unsupported payment gateway: {gateway}",
        )


# ============================================================================
# Payments
# ============================================================================


@router.post(
    "/payments/{gateway}",
    response_model=PaymentOutcomeResponse,
    response_model_exclude_none=True,
)
async def create_payment(
    gateway: str,
    body: CreatePaymentBody,
    response: Response,
    payments: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_app_settings),
) -> PaymentOutcomeResponse:
    """
    Charge a card token produced by the payment form.

    Failures are returned as {"success": false, "error": ...} with a non-2xx
    status so the form can show the message.
    """
    _require_gateway(gateway)

    request = PaymentRequest(
        amount_minor=body.amount,
        source_id=body.source_id,
        idempotency_key=body.idempotency_key,
        currency=settings.default_currency,
        note=body.description or None,
        reference_id=body.reference_id,
        buyer_email=body.buyer_email,
    )

    with log_context(idempotency_key=body.idempotency_key):
        try:
            payment = await payments.create_payment(request)
        except PaymentGatewayError as exc:
            response.status_code = status.HTTP_402_PAYMENT_REQUIRED
            return PaymentOutcomeResponse(success=False, error=str(exc))
        except PaymentFailedError as exc:
            response.status_code = status.HTTP_502_BAD_GATEWAY
            return PaymentOutcomeResponse(success=False, error=exc.message)
        except UnknownPaymentError:
            logger.error("payment_unexpected_failure", exc_info=True)
            response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            return PaymentOutcomeResponse(success=False, error="Payment processing failed")

        logger.info("payment_accepted", payment_id=payment.id, status=payment.status.value)

    return PaymentOutcomeResponse(success=True, payment_id=payment.id, status=payment.status)


@router.get(
    "/payments/{gateway}/{payment_id}",
    response_model=PaymentDetailResponse,
)
async def get_payment(
    gateway: str,
    payment_id: str,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentDetailResponse:
    """Look up a payment. 404 when Square has no such payment, 502 when the lookup failed."""
    _require_gateway(gateway)

    lookup = await payments.lookup_payment(payment_id)
    if lookup.outcome == LookupOutcome.ERROR:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Payment lookup failed: {lookup.error}",
        )
    if lookup.value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Payment not found: {payment_id}",
        )

    return PaymentDetailResponse.from_payment(lookup.value)


@router.post(
    "/payments/{gateway}/{payment_id}/refunds",
    response_model=RefundResponse,
    response_model_exclude_none=True,
)
async def refund_payment(
    gateway: str,
    payment_id: str,
    body: RefundBody,
    response: Response,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> RefundResponse:
    """Refund part or all of a payment. Every call is a new refund attempt."""
    _require_gateway(gateway)

    result = await payments.refund_payment(payment_id, body.amount, body.reason)
    if not result.success:
        response.status_code = status.HTTP_502_BAD_GATEWAY

    return RefundResponse(success=result.success, refund_id=result.refund_id, error=result.error)


# ============================================================================
# Customers & Subscriptions
# ============================================================================


@router.post(
    "/customers",
    response_model=CustomerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_customer(
    body: CreateCustomerBody,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> CustomerResponse:
    """Create a Square customer profile for a registering player."""
    customer = await payments.create_customer(
        CustomerDetails(
            given_name=body.given_name,
            family_name=body.family_name,
            email_address=body.email_address,
            phone_number=body.phone_number,
        )
    )
    if customer is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Customer creation failed",
        )
    return CustomerResponse.from_customer(customer)


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> CustomerResponse:
    lookup = await payments.lookup_customer(customer_id)
    if lookup.outcome == LookupOutcome.ERROR:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Customer lookup failed: {lookup.error}",
        )
    if lookup.value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Customer not found: {customer_id}",
        )
    return CustomerResponse.from_customer(lookup.value)


@router.post(
    "/subscriptions",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription(
    body: CreateSubscriptionBody,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> SubscriptionResponse:
    """Start a monthly membership."""
    subscription_id = await payments.create_subscription(body.customer_id, body.plan_id)
    if subscription_id is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Subscription creation failed",
        )
    return SubscriptionResponse(subscription_id=subscription_id)


# ============================================================================
# Webhooks
# ============================================================================


@router.post("/webhooks/square", response_model=WebhookAck)
async def square_webhook(
    request: Request,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> WebhookAck:
    """
    Receive a Square webhook notification.

    Requests whose signature does not match are rejected with 401 before the
    body is parsed.
    """
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER, "")

    if not payments.verify_webhook(payload, signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        event = parse_webhook_event(payload)
    except WebhookVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc

    logger.info(
        "square_webhook_received",
        event_id=event.event_id,
        event_type=event.event_type,
        payment_id=event.payment_id,
    )

    return WebhookAck(status="received", event_id=event.event_id, event_type=event.event_type)
