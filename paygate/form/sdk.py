"""
Web Payments SDK capability interfaces.

Describes exactly what the payment form needs from Square's hosted card
widget. The host environment supplies the real binding; tests supply fakes.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

TOKEN_STATUS_OK = "OK"


class ScriptLoadError(Exception):
    """Raised when the Web Payments SDK script cannot be loaded."""

    pass


@dataclass(frozen=True)
class TokenError:
    """Validation message reported by the card widget."""

    message: str
    field: str | None = None


@dataclass(frozen=True)
class TokenResult:
    """Result of tokenizing the card input."""

    status: str
    token: str | None = None
    errors: tuple[TokenError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.status == TOKEN_STATUS_OK and bool(self.token)

    @property
    def first_error(self) -> str | None:
        return self.errors[0].message if self.errors else None


class PaymentWidget(Protocol):
    """A card input or card button rendered by the SDK."""

    async def attach(self, selector: str) -> None: ...

    async def tokenize(self) -> TokenResult: ...

    async def destroy(self) -> None: ...


class PaymentsClient(Protocol):
    """Square payments object bound to an application and location."""

    async def card(self, options: dict[str, Any]) -> PaymentWidget: ...

    async def card_button(self, options: dict[str, Any]) -> PaymentWidget: ...


class WebPaymentsSDK(Protocol):
    """Loader for the Web Payments SDK script."""

    async def load(self, script_url: str) -> None:
        """Inject the script and wait for it; raise ScriptLoadError on failure."""
        ...

    async def unload(self) -> None:
        """Remove the injected script."""
        ...

    def payments(self, application_id: str, location_id: str) -> PaymentsClient: ...


# Dark theme matching the tournament site
CARD_OPTIONS: dict[str, Any] = {
    "style": {
        "input": {
            "color": "#ffffff",
            "fontFamily": "ui-sans-serif, system-ui, sans-serif",
            "fontSize": "16px",
            "fontWeight": "400",
            "lineHeight": "24px",
            "placeholderColor": "#9ca3af",
        },
        ".input-container": {
            "backgroundColor": "#1f2937",
            "borderColor": "#374151",
            "borderRadius": "8px",
            "borderWidth": "1px",
        },
        ".input-container.is-focus": {"borderColor": "#06b6d4"},
        ".input-container.is-error": {"borderColor": "#ef4444"},
        ".message-text": {"color": "#ef4444"},
        ".message-icon": {"color": "#ef4444"},
    }
}

CARD_BUTTON_OPTIONS: dict[str, Any] = {
    "style": {
        "backgroundColor": "#06b6d4",
        "color": "#ffffff",
        "fontSize": "16px",
        "fontWeight": "600",
        "borderRadius": "8px",
        "padding": "12px 24px",
    }
}
