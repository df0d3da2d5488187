"""
Utility functions for the Gateway Payments SDK.

This module contains the retry policy used by capture-context issuance,
locale-independent amount formatting, base64url helpers and small dict helpers.
"""

import base64
import binascii
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, TypeVar, Union

from .logging_config import SecretRedactor

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TWO_PLACES = Decimal("0.01")


def redact_message(msg: str) -> str:
    """Consistent message redaction function for the entire module."""
    return SecretRedactor.redact(msg)


def get_current_timestamp() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def to_decimal(amount: Union[int, float, str, Decimal]) -> Decimal:
    """
    Convert an amount to Decimal without binary float artifacts.

    Floats go through ``str`` so that 19.99 stays 19.99 instead of
    19.989999999999998436805981327779591083526611328125.
    """
    if isinstance(amount, bool):
        raise ValueError(f"Invalid amount: {amount!r}")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, (int, float, str)):
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}")
    else:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    return value


def format_amount(amount: Union[int, float, str, Decimal]) -> str:
    """
    Format a monetary amount for the gateway.

    Always two decimal places, '.' separator, no grouping, regardless of the
    process locale.
    """
    value = to_decimal(amount).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    return f"{value:f}"


def b64url_decode(segment: str) -> bytes:
    """Decode an unpadded base64url segment."""
    if not isinstance(segment, str):
        raise ValueError("base64url segment must be a string")
    if len(segment) % 4 == 1:
        raise ValueError("Illegal base64url string")
    padded = segment + "=" * (-len(segment) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Illegal base64url string: {e}")


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def deep_get(data: dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation. Type safe."""
    if not isinstance(data, dict):
        return default
    for key in key_path.split("."):
        if isinstance(data, dict) and key in data:
            data = data[key]
        else:
            return default
    return data


@dataclass
class RetryPolicy:
    """
    Bounded retry with a fixed backoff between attempts.

    Args:
        retry_on: Predicate deciding whether an exception is retryable.
            Exceptions it rejects propagate immediately.
        max_attempts: Total number of attempts, including the first one.
        backoff: Seconds to wait between attempts.
        sleep: Sleep function, injectable for tests.
        on_exhausted: Builds the exception raised once every attempt failed.
            Receives the attempt count and the last exception. When omitted
            the last exception is re-raised.
    """

    retry_on: Callable[[Exception], bool]
    max_attempts: int = 3
    backoff: float = 0.5
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    on_exhausted: Optional[Callable[[int, Exception], Exception]] = field(default=None, repr=False)
    logger: Optional[logging.Logger] = field(default=None, repr=False)
    retry_message: Optional[str] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff < 0:
            raise ValueError("backoff must be non-negative")

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Invoke ``func`` until it succeeds, a non-retryable error occurs, or attempts run out."""
        log = self.logger or logger
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.retry_on(e):
                    raise
                redacted_msg = redact_message(str(e))
                if attempt == self.max_attempts:
                    log.error(
                        "%s failed after %d attempts: %s",
                        getattr(func, "__name__", "call"),
                        self.max_attempts,
                        redacted_msg,
                    )
                    if self.on_exhausted is not None:
                        raise self.on_exhausted(attempt, e) from e
                    raise
                log.warning(
                    "%s (attempt %d/%d, delay %.2fs): %s",
                    self.retry_message or f"Retrying {getattr(func, '__name__', 'call')}...",
                    attempt,
                    self.max_attempts,
                    self.backoff,
                    redacted_msg,
                )
                if self.backoff:
                    self.sleep(self.backoff)
        raise RuntimeError("RetryPolicy exited without a result")
