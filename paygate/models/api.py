"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Field names on the wire are camelCase to match the payment form.
"""

from pydantic import BaseModel, ConfigDict, Field

from paygate.models.domain import Customer, NormalizedPayment, PaymentStatus


class CamelModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Payment Models
# ============================================================================


class CreatePaymentBody(CamelModel):
    """POST /api/payments/{gateway} request body."""

    source_id: str = Field(..., alias="sourceId", min_length=1)
    amount: int = Field(..., gt=0, description="Amount in minor units (pence)")
    description: str = Field("", max_length=500)
    idempotency_key: str = Field(..., alias="idempotencyKey", min_length=1, max_length=45)
    reference_id: str | None = Field(None, alias="referenceId", max_length=40)
    buyer_email: str | None = Field(None, alias="buyerEmail", max_length=255)


class PaymentOutcomeResponse(CamelModel):
    """POST /api/payments/{gateway} response."""

    success: bool
    payment_id: str | None = Field(None, alias="paymentId")
    status: PaymentStatus | None = None
    error: str | None = None


class CardSummaryResponse(CamelModel):
    brand: str
    last4: str
    exp_month: int = Field(..., alias="expMonth")
    exp_year: int = Field(..., alias="expYear")


class PaymentDetailResponse(CamelModel):
    """GET /api/payments/{gateway}/{payment_id} response."""

    id: str
    amount: int
    currency: str
    status: PaymentStatus
    source_type: str = Field(..., alias="sourceType")
    card_details: CardSummaryResponse | None = Field(None, alias="cardDetails")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")

    @classmethod
    def from_payment(cls, payment: NormalizedPayment) -> "PaymentDetailResponse":
        card = None
        if payment.card is not None:
            card = CardSummaryResponse(
                brand=payment.card.brand,
                last4=payment.card.last4,
                exp_month=payment.card.exp_month,
                exp_year=payment.card.exp_year,
            )
        return cls(
            id=payment.id,
            amount=payment.amount_minor,
            currency=payment.currency,
            status=payment.status,
            source_type=payment.source_type,
            card_details=card,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
        )


# ============================================================================
# Refund Models
# ============================================================================


class RefundBody(CamelModel):
    """POST /api/payments/{gateway}/{payment_id}/refunds request body."""

    amount: int = Field(..., gt=0)
    reason: str | None = Field(None, max_length=192)


class RefundResponse(CamelModel):
    success: bool
    refund_id: str | None = Field(None, alias="refundId")
    error: str | None = None


# ============================================================================
# Customer & Subscription Models
# ============================================================================


class CreateCustomerBody(CamelModel):
    given_name: str | None = Field(None, alias="givenName", max_length=300)
    family_name: str | None = Field(None, alias="familyName", max_length=300)
    email_address: str | None = Field(None, alias="emailAddress", max_length=254)
    phone_number: str | None = Field(None, alias="phoneNumber", max_length=32)


class CustomerResponse(CamelModel):
    id: str
    given_name: str | None = Field(None, alias="givenName")
    family_name: str | None = Field(None, alias="familyName")
    email_address: str | None = Field(None, alias="emailAddress")
    phone_number: str | None = Field(None, alias="phoneNumber")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            id=customer.id,
            given_name=customer.given_name,
            family_name=customer.family_name,
            email_address=customer.email_address,
            phone_number=customer.phone_number,
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


class CreateSubscriptionBody(CamelModel):
    customer_id: str = Field(..., alias="customerId", min_length=1)
    plan_id: str = Field(..., alias="planId", min_length=1)


class SubscriptionResponse(CamelModel):
    subscription_id: str = Field(..., alias="subscriptionId")


# ============================================================================
# Webhook & Health Models
# ============================================================================


class WebhookAck(BaseModel):
    status: str
    event_id: str | None = None
    event_type: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
