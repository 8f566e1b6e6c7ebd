"""
Payment Gateway Protocol - Interface the HTTP layer depends on.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol

from paygate.models.domain import (
    Customer,
    CustomerDetails,
    Lookup,
    NormalizedPayment,
    PaymentRequest,
    RefundResult,
)


@dataclass(frozen=True)
class WebhookEvent:
    """
    Square webhook notification, reduced to what the service logs and acks.

    payment_id is set for payment.* and refund.* events.
    """

    event_id: str | None
    event_type: str | None
    merchant_id: str | None = None
    payment_id: str | None = None
    created_at: str | None = None


class PaymentGateway(Protocol):
    """
    Payment gateway protocol.

    SquareProvider implements it for production; tests substitute fakes.
    """

    async def create_payment(self, request: PaymentRequest) -> NormalizedPayment:
        """
        Charge a tokenized card.

        Args:
            request: Charge details, including the caller's idempotency key

        Returns:
            Normalized payment

        Raises:
            PaymentGatewayError: Square rejected the request
            PaymentFailedError: Square answered without a payment
            UnknownPaymentError: Anything else, including network failures
        """
        ...

    async def lookup_payment(self, payment_id: str) -> Lookup[NormalizedPayment]:
        """Fetch a payment. Never raises."""
        ...

    async def get_payment(self, payment_id: str) -> NormalizedPayment | None:
        """Fetch a payment, None when missing or on failure. Never raises."""
        ...

    async def refund_payment(
        self, payment_id: str, amount_minor: int, reason: str | None = None
    ) -> RefundResult:
        """Refund part or all of a payment. Never raises."""
        ...

    async def create_customer(self, details: CustomerDetails) -> Customer | None:
        """Create a customer profile, None on failure."""
        ...

    async def lookup_customer(self, customer_id: str) -> Lookup[Customer]:
        """Fetch a customer. Never raises."""
        ...

    async def get_customer(self, customer_id: str) -> Customer | None:
        """Fetch a customer, None when missing or on failure."""
        ...

    async def create_subscription(self, customer_id: str, plan_id: str) -> str | None:
        """Start a subscription, returning its id or None on failure."""
        ...

    def verify_webhook(self, body: str | bytes, signature: str) -> bool:
        """Check a webhook signature against the configured signing key."""
        ...
