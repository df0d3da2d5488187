"""
Custom exceptions for the Gateway Payments SDK.

Defines the error taxonomy for transport failures, signed-token integrity
failures, caller precondition violations and configuration problems.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


@dataclass
class GatewayPaymentsError(Exception):
    """Base exception for all Gateway Payments SDK errors."""

    message: str
    error_code: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        logger.error(
            "%s: %s (Code: %s, Details: %s)",
            self.__class__.__name__,
            self.message,
            self.error_code,
            self.details,
        )

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}" if self.error_code else self.message


@dataclass
class TransportError(GatewayPaymentsError):
    """Raised when the gateway cannot be reached or the HTTP exchange fails."""

    method: Optional[str] = None
    url: Optional[str] = None

    def __post_init__(self):
        self.details.update(_compact({"method": self.method, "url": self.url}))
        self.error_code = self.error_code or "TRANSPORT_ERROR"
        super().__post_init__()


@dataclass
class GatewayApiError(TransportError):
    """Raised when the gateway answers with a non-success HTTP status."""

    status_code: Optional[int] = None
    response_text: Optional[str] = None

    def __post_init__(self):
        self.details.update(_compact({"status_code": self.status_code}))
        self.error_code = self.error_code or "GATEWAY_API_ERROR"
        super().__post_init__()

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def response_json(self) -> Optional[dict[str, Any]]:
        """Parsed error body, or None when the body is not a JSON object."""
        if not self.response_text:
            return None
        try:
            data = json.loads(self.response_text)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None


@dataclass
class TokenVerificationError(GatewayPaymentsError):
    """Base exception for signed-token integrity failures."""

    key_id: Optional[str] = None

    def __post_init__(self):
        self.details.update(_compact({"key_id": self.key_id}))
        self.error_code = self.error_code or "TOKEN_VERIFICATION_ERROR"
        super().__post_init__()


@dataclass
class MalformedToken(TokenVerificationError):
    """Raised when a token cannot be split, decoded, or lacks a key id."""

    def __post_init__(self):
        self.error_code = self.error_code or "MALFORMED_TOKEN"
        super().__post_init__()


@dataclass
class SignatureInvalid(TokenVerificationError):
    """Raised when a token signature does not match the published key."""

    def __post_init__(self):
        self.error_code = self.error_code or "SIGNATURE_INVALID"
        super().__post_init__()


@dataclass
class KeyNotFound(TokenVerificationError):
    """Raised when the gateway has no public key for the token's key id."""

    def __post_init__(self):
        self.error_code = self.error_code or "KEY_NOT_FOUND"
        super().__post_init__()


@dataclass
class ClaimMissing(TokenVerificationError):
    """Raised when a verified capture context lacks a required claim."""

    claim: Optional[str] = None

    def __post_init__(self):
        self.details.update(_compact({"claim": self.claim}))
        self.error_code = self.error_code or "CLAIM_MISSING"
        super().__post_init__()


@dataclass
class VerificationExhausted(TokenVerificationError):
    """Raised when every capture-context attempt failed verification."""

    attempts: Optional[int] = None
    last_error: Optional[str] = None

    def __post_init__(self):
        self.details.update(_compact({"attempts": self.attempts, "last_error": self.last_error}))
        self.error_code = self.error_code or "VERIFICATION_EXHAUSTED"
        super().__post_init__()


@dataclass
class CustomerNotFound(GatewayPaymentsError):
    """Raised when the customer behind an order cannot be resolved."""

    customer_id: Optional[str] = None
    order_id: Optional[str] = None

    def __post_init__(self):
        self.details.update(_compact({"customer_id": self.customer_id, "order_id": self.order_id}))
        self.error_code = self.error_code or "CUSTOMER_NOT_FOUND"
        super().__post_init__()


@dataclass
class SequenceViolation(GatewayPaymentsError):
    """Raised when capture, refund or void is invoked out of the allowed order."""

    payment_id: Optional[str] = None
    operation: Optional[str] = None
    current_status: Optional[str] = None

    def __post_init__(self):
        self.details.update(
            _compact(
                {
                    "payment_id": self.payment_id,
                    "operation": self.operation,
                    "current_status": self.current_status,
                }
            )
        )
        self.error_code = self.error_code or "SEQUENCE_VIOLATION"
        super().__post_init__()
        logger.warning("Sequence violation: %s (Payment: %s, Operation: %s)", self.message, self.payment_id, self.operation)


@dataclass
class ConfigurationError(GatewayPaymentsError):
    """Raised for configuration errors."""

    config_key: Optional[str] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None

    def __post_init__(self):
        self.details.update(
            _compact(
                {
                    "config_key": self.config_key,
                    "expected_value": self.expected_value,
                    "actual_value": self.actual_value,
                }
            )
        )
        self.error_code = self.error_code or "CONFIGURATION_ERROR"
        super().__post_init__()


@dataclass
class ValidationError(GatewayPaymentsError):
    """Raised for validation errors."""

    field: Optional[str] = None
    value: Any = None
    constraints: Optional[dict[str, Any]] = None

    def __post_init__(self):
        self.details.update(
            _compact(
                {
                    "field": self.field,
                    "value": self.value,
                    "constraints": self.constraints,
                }
            )
        )
        self.error_code = self.error_code or "VALIDATION_ERROR"
        super().__post_init__()
