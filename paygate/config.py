"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Square credentials are validated when Settings is constructed,
which happens during application startup.
"""

import sys
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SANDBOX_SCRIPT_URL = "https://sandbox.web.squarecdn.com/v1/square.js"
PRODUCTION_SCRIPT_URL = "https://web.squarecdn.com/v1/square.js"


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "paygate"
    api_version: str = "0.1.0"
    api_description: str = "Square payment gateway for tournament registrations"

    # Square - all required, no defaults for production safety
    square_application_id: str = ""
    square_location_id: str = ""
    square_access_token: str = ""
    square_environment: str = ""  # sandbox or production
    square_webhook_signature_key: str = ""
    # Square signs notification_url + body; empty means body-only signatures
    square_webhook_notification_url: str = ""

    default_currency: str = "GBP"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "paygate"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate Square configuration at startup.

        The app MUST NOT start if credentials are missing, otherwise the
        failure only shows up on the first payment attempt.
        """
        errors: list[str] = []

        required = {
            "SQUARE_APPLICATION_ID": self.square_application_id,
            "SQUARE_LOCATION_ID": self.square_location_id,
            "SQUARE_ACCESS_TOKEN": self.square_access_token,
            "SQUARE_WEBHOOK_SIGNATURE_KEY": self.square_webhook_signature_key,
        }
        for name, value in required.items():
            if not value:
                errors.append(f"{name} is required but empty or missing")

        if self.square_environment.lower() not in ("sandbox", "production"):
            errors.append(
                "SQUARE_ENVIRONMENT must be 'sandbox' or 'production', "
                f"got: {self.square_environment!r}"
            )

        if len(self.default_currency) != 3:
            errors.append(
                f"DEFAULT_CURRENCY must be an ISO 4217 code, got: {self.default_currency}"
            )

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def is_production(self) -> bool:
        """True when talking to Square's live environment."""
        return self.square_environment.lower() == "production"

    @property
    def web_payments_script_url(self) -> str:
        """Web Payments SDK script matching the configured environment."""
        return PRODUCTION_SCRIPT_URL if self.is_production else SANDBOX_SCRIPT_URL


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings instance.

    First call validates the environment; the app calls this during startup.
    """
    return Settings()
