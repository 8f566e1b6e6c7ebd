"""
Payment form - client-side coordination of the Square card widget.
"""

from paygate.form.controller import FormConfig, PaymentFormController
from paygate.form.sdk import ScriptLoadError, TokenError, TokenResult
from paygate.form.state import FormState, InvalidTransitionError

__all__ = [
    "FormConfig",
    "FormState",
    "InvalidTransitionError",
    "PaymentFormController",
    "ScriptLoadError",
    "TokenError",
    "TokenResult",
]
