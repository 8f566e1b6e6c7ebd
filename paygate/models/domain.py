"""
Domain Models - Internal payment models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(UTC).isoformat()


class PaymentStatus(str, Enum):
    """Normalized payment status."""

    CREATED = "created"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
    UNKNOWN = "unknown"

    @classmethod
    def from_vendor(cls, value: str | None) -> "PaymentStatus":
        """Map a Square payment status onto the normalized enum."""
        if not value:
            return cls.UNKNOWN
        return _VENDOR_STATUS.get(str(value).upper(), cls.UNKNOWN)


_VENDOR_STATUS = {
    "APPROVED": PaymentStatus.CREATED,
    "PENDING": PaymentStatus.PENDING,
    "COMPLETED": PaymentStatus.COMPLETED,
    "FAILED": PaymentStatus.FAILED,
    "CANCELED": PaymentStatus.CANCELED,
}


@dataclass(frozen=True)
class PaymentRequest:
    """Request to charge a tokenized card - immutable intent."""

    amount_minor: int
    source_id: str
    idempotency_key: str
    currency: str = "GBP"
    note: str | None = None
    reference_id: str | None = None
    buyer_email: str | None = None

    def __post_init__(self) -> None:
        """Validate charge constraints."""
        if self.amount_minor <= 0:
            raise ValueError(f"Payment amount must be positive: {self.amount_minor}")
        if not self.source_id:
            raise ValueError("source_id cannot be empty")
        if not self.idempotency_key:
            raise ValueError("idempotency_key cannot be empty")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")


@dataclass(frozen=True)
class CardSummary:
    """Card details safe to show back to the buyer."""

    brand: str
    last4: str
    exp_month: int
    exp_year: int


@dataclass(frozen=True)
class NormalizedPayment:
    """Payment as seen by callers, independent of the vendor's response shape."""

    id: str
    amount_minor: int
    currency: str
    status: PaymentStatus
    source_type: str
    created_at: str
    updated_at: str
    card: CardSummary | None = None


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a refund. Exactly one of refund_id / error is set."""

    success: bool
    refund_id: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and (not self.refund_id or self.error is not None):
            raise ValueError("Successful refund requires refund_id and no error")
        if not self.success and (not self.error or self.refund_id is not None):
            raise ValueError("Failed refund requires error and no refund_id")

    @classmethod
    def succeeded(cls, refund_id: str) -> "RefundResult":
        return cls(success=True, refund_id=refund_id)

    @classmethod
    def failed(cls, error: str) -> "RefundResult":
        return cls(success=False, error=error)


@dataclass(frozen=True)
class CustomerDetails:
    """Contact fields used when creating a customer."""

    given_name: str | None = None
    family_name: str | None = None
    email_address: str | None = None
    phone_number: str | None = None


@dataclass(frozen=True)
class Customer:
    """Square customer profile."""

    id: str
    created_at: str
    updated_at: str
    given_name: str | None = None
    family_name: str | None = None
    email_address: str | None = None
    phone_number: str | None = None


class LookupOutcome(str, Enum):
    """Outcome of a best-effort read."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """
    Tagged result of a read that never raises.

    Separates "the vendor has no such record" from "the lookup failed",
    keeping the vendor's error message for diagnostics.
    """

    outcome: LookupOutcome
    value: T | None = None
    error: str | None = field(default=None)

    @property
    def found(self) -> bool:
        return self.outcome == LookupOutcome.FOUND

    @classmethod
    def hit(cls, value: T) -> "Lookup[T]":
        return cls(outcome=LookupOutcome.FOUND, value=value)

    @classmethod
    def missing(cls) -> "Lookup[T]":
        return cls(outcome=LookupOutcome.NOT_FOUND)

    @classmethod
    def failed(cls, error: str) -> "Lookup[T]":
        return cls(outcome=LookupOutcome.ERROR, error=error)
