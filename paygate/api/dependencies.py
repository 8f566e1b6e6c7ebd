"""
FastAPI Dependencies - Settings and payment gateway lookup.

Both live on app.state, populated by create_app(); tests override them.
"""

from fastapi import Request

from paygate.config import Settings
from paygate.services.payment_provider import PaymentGateway


def get_app_settings(request: Request) -> Settings:
    """Settings validated at startup."""
    settings: Settings = request.app.state.settings
    return settings


def get_payment_gateway(request: Request) -> PaymentGateway:
    """The configured payment gateway (SquareProvider in production)."""
    gateway: PaymentGateway = request.app.state.payment_gateway
    return gateway
