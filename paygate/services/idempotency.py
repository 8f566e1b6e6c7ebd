"""
Idempotency key generation.

Keys combine a readable head (prefix and subject), the time in base-36 epoch
milliseconds and a random component from the secrets module, so two calls in
the same millisecond still differ. Square caps keys at 45 characters; the tail
takes 17 of them and only the readable head is ever shortened.
"""

import secrets
import string
import time

MAX_KEY_LENGTH = 45
_RANDOM_BYTES = 4
_BASE36_DIGITS = string.digits + string.ascii_lowercase


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _base36(value: int) -> str:
    digits = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
        if value == 0:
            return "".join(reversed(digits))


def new_idempotency_key(prefix: str, subject: str | None = None) -> str:
    """
    Build a fresh key, e.g. "refund_pay123_lxa1b2c3_9f1c2ab0".

    A subject too long for the remaining room (a full Square payment id after
    "refund_", say) keeps its leading characters. Every call returns a
    different key; reuse a returned key to retry the same logical operation.
    """
    tail = f"{_base36(_epoch_ms())}_{secrets.token_hex(_RANDOM_BYTES)}"
    head = f"{prefix}_{subject}" if subject else prefix
    head = head[: MAX_KEY_LENGTH - len(tail) - 1]
    return f"{head}_{tail}"
