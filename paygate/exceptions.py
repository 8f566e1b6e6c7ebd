"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class PaymentError(Exception):
    """Base exception for all payment errors."""

    pass


class ValidationFailedError(PaymentError):
    """Raised when card details are rejected during tokenization. Recoverable."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PaymentGatewayError(PaymentError):
    """Raised when Square reports a structured API error."""

    def __init__(
        self,
        detail: str,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        super().__init__(f"Payment failed: {detail}")


class PaymentFailedError(PaymentError):
    """Raised when the vendor call succeeded but returned no payment."""

    def __init__(self, message: str = "Payment creation failed") -> None:
        self.message = message
        super().__init__(message)


class UnknownPaymentError(PaymentError):
    """Raised for any other failure, including network errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Unknown payment error: {message}")


class WebhookVerificationError(PaymentError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")
