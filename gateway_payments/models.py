"""
Data models for the Gateway Payments SDK.

Defines request contexts, gateway results, lifecycle outcomes, the caller-owned
payment record and the read-only order/customer inputs.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .exceptions import ValidationError
from .utils import to_decimal

logger = logging.getLogger(__name__)


class GatewayStatus(Enum):
    """Status codes returned by the gateway's payment endpoints."""

    AUTHORIZED = "AUTHORIZED"
    DECLINED = "DECLINED"
    PARTIAL_AUTHORIZED = "PARTIAL_AUTHORIZED"
    AUTHORIZED_PENDING_REVIEW = "AUTHORIZED_PENDING_REVIEW"
    AUTHORIZED_RISK_DECLINED = "AUTHORIZED_RISK_DECLINED"
    INVALID_REQUEST = "INVALID_REQUEST"
    PENDING_AUTHENTICATION = "PENDING_AUTHENTICATION"
    PENDING_REVIEW = "PENDING_REVIEW"
    PENDING = "PENDING"
    TRANSMITTED = "TRANSMITTED"
    VOIDED = "VOIDED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "GatewayStatus":
        """Map a raw status string to a member, UNKNOWN for anything unrecognized."""
        if not value or not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN


class PaymentStatus(Enum):
    """Merchant-side payment lifecycle status."""

    NEW = "New"
    PENDING = "Pending"
    AUTHORIZED = "Authorized"
    PAID = "Paid"
    DECLINED = "Declined"
    ERROR = "Error"
    VOIDED = "Voided"
    REFUNDED = "Refunded"


class OutcomeKind(Enum):
    """Classified result of a gateway operation."""

    APPROVED = "approved"
    DECLINED = "declined"
    INVALID = "invalid"
    PENDING_REVIEW = "pending_review"
    CAPTURE_ACCEPTED = "capture_accepted"
    REFUND_ACCEPTED = "refund_accepted"
    VOID_ACCEPTED = "void_accepted"
    FAILED = "failed"


class TransactionKind(Enum):
    AUTHORIZATION = "authorization"
    SALE = "sale"
    CAPTURE = "capture"
    REFUND = "refund"
    VOID = "void"


@dataclass(frozen=True)
class PaymentRequestContext:
    """Per-call flags; the sandbox flag picks both host and credentials for the whole call."""

    sandbox: bool = True
    single_message_mode: bool = False
    outer_payment_id: Optional[str] = None


@dataclass(frozen=True)
class CaptureContext:
    """A verified tokenization context handed to the browser for one checkout."""

    signed_token: str
    key_id: str
    client_library_url: str
    client_library_integrity: str

    def to_public_parameters(self) -> dict[str, str]:
        return {
            "jwt": self.signed_token,
            "keyId": self.key_id,
            "clientLibrary": self.client_library_url,
            "clientLibraryIntegrity": self.client_library_integrity,
        }


@dataclass(frozen=True)
class SigningKey:
    """RSA public key published by the gateway (JWK form)."""

    key_id: str
    modulus: str
    exponent: str
    key_type: str = "RSA"
    use: Optional[str] = None

    @classmethod
    def from_jwk(cls, data: dict[str, Any]) -> "SigningKey":
        if not isinstance(data, dict) or not data.get("n") or not data.get("e"):
            raise ValidationError("JWK must contain modulus 'n' and exponent 'e'", field="jwk", value=data)
        return cls(
            key_id=data.get("kid", ""),
            modulus=data["n"],
            exponent=data["e"],
            key_type=data.get("kty", "RSA"),
            use=data.get("use"),
        )

    def to_jwk(self) -> dict[str, str]:
        jwk = {"kty": self.key_type, "kid": self.key_id, "n": self.modulus, "e": self.exponent}
        if self.use:
            jwk["use"] = self.use
        return jwk


@dataclass(frozen=True)
class GatewayOperationResult:
    """Un-interpreted result of one gateway call."""

    status: GatewayStatus
    raw_status: Optional[str] = None
    transaction_id: Optional[str] = None
    processor_transaction_id: Optional[str] = None
    processor_response_code: Optional[str] = None
    error_reason: Optional[str] = None
    error_message: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> "GatewayOperationResult":
        """Build a result from a gateway response body."""
        payload = payload if isinstance(payload, dict) else {}
        processor = payload.get("processorInformation") or {}
        error = payload.get("errorInformation") or {}
        raw_status = payload.get("status")
        return cls(
            status=GatewayStatus.parse(raw_status),
            raw_status=raw_status,
            transaction_id=payload.get("id"),
            processor_transaction_id=processor.get("transactionId"),
            processor_response_code=processor.get("responseCode"),
            # Top-level reason/message appear on 4xx bodies, errorInformation on 201 declines
            error_reason=error.get("reason") or payload.get("reason"),
            error_message=error.get("message") or payload.get("message"),
            raw=payload,
        )

    @property
    def reason_text(self) -> Optional[str]:
        return self.error_message or self.error_reason

    def raw_text(self) -> str:
        return json.dumps(self.raw, sort_keys=True, default=str)


@dataclass
class Address:
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    region_name: Optional[str] = None
    postal_code: str = ""
    country_name: str = ""


@dataclass
class LineItem:
    id: str
    name: str
    sku: str = ""
    price: Decimal = Decimal("0")
    placed_price: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    quantity: int = 1
    is_gift: bool = False


@dataclass
class Order:
    """Customer order consumed read-only, except for its status on approval."""

    id: str
    customer_id: str
    currency: str = "USD"
    total: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    items: list[LineItem] = field(default_factory=list)
    status: str = "New"


@dataclass
class Contact:
    id: str
    first_name: str = ""
    last_name: str = ""
    middle_name: Optional[str] = None
    emails: list[str] = field(default_factory=list)
    account_emails: list[str] = field(default_factory=list)

    @property
    def email(self) -> Optional[str]:
        if self.emails:
            return self.emails[0]
        if self.account_emails:
            return self.account_emails[0]
        return None


@dataclass
class PaymentTransaction:
    """A gateway transaction recorded against a payment."""

    kind: TransactionKind
    amount: Decimal
    currency: str
    outer_id: Optional[str] = None
    processor_transaction_id: Optional[str] = None
    response_code: Optional[str] = None
    note: str = ""
    response_data: str = ""
    is_processed: bool = True
    processed_at: Optional[datetime] = None
    sequence_number: Optional[int] = None


@dataclass
class PaymentRecord:
    """
    Payment owned by the surrounding order system.

    The engine only writes gateway-derived fields; persistence stays with the
    caller.
    """

    id: str
    amount: Decimal
    currency: str = "USD"
    billing_address: Optional[Address] = None
    status: PaymentStatus = PaymentStatus.NEW
    is_approved: bool = False
    is_cancelled: bool = False
    authorized_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    outer_transaction_id: Optional[str] = None
    comment: str = ""
    transactions: list[PaymentTransaction] = field(default_factory=list)

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        if self.amount < 0:
            raise ValidationError("Payment amount cannot be negative", field="amount", value=str(self.amount))

    def add_comment(self, text: str) -> None:
        self.comment = f"{self.comment}{text}\n"

    def transactions_of(self, kind: TransactionKind) -> list[PaymentTransaction]:
        return [t for t in self.transactions if t.kind == kind]

    @property
    def capture_count(self) -> int:
        return len(self.transactions_of(TransactionKind.CAPTURE))

    @property
    def captured_amount(self) -> Decimal:
        captured = sum((t.amount for t in self.transactions_of(TransactionKind.CAPTURE)), Decimal("0"))
        if self.transactions_of(TransactionKind.SALE):
            captured += sum((t.amount for t in self.transactions_of(TransactionKind.SALE)), Decimal("0"))
        return captured

    @property
    def refunded_amount(self) -> Decimal:
        return sum((t.amount for t in self.transactions_of(TransactionKind.REFUND)), Decimal("0"))

    @property
    def refundable_amount(self) -> Decimal:
        base = self.captured_amount or self.amount
        return max(base - self.refunded_amount, Decimal("0"))

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the record as plain data, used to compare before/after states."""
        return asdict(self)


@dataclass(frozen=True)
class LifecycleOutcome:
    """
    Mapped outcome of a gateway operation, returned to the caller.

    ``error_message`` is buyer-facing for declined, invalid and held-for-review
    outcomes. ``amount``, ``sequence_number`` and ``note`` describe the
    transaction to record when the outcome is applied.
    """

    kind: OutcomeKind
    is_success: bool
    new_status: Optional[PaymentStatus] = None
    is_pending: bool = False
    outer_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw_status: Optional[str] = None
    processor_transaction_id: Optional[str] = None
    processor_response_code: Optional[str] = None
    amount: Optional[Decimal] = None
    sequence_number: Optional[int] = None
    note: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookSubscription:
    id: str
    name: str
    event_types: list[str] = field(default_factory=list)
    status: Optional[str] = None
    product_id: Optional[str] = None
    webhook_url: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "WebhookSubscription":
        return cls(
            id=data.get("webhookId") or data.get("id") or "",
            name=data.get("name") or "",
            event_types=list(data.get("eventTypes") or []),
            status=data.get("status"),
            product_id=data.get("productId"),
            webhook_url=data.get("webhookUrl"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WebhookNotification:
    """A decoded gateway webhook delivery."""

    event_type: str
    payment_id: Optional[str] = None
    webhook_id: Optional[str] = None
    notification_id: Optional[str] = None
    organization_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookProduct:
    """A gateway product whose events a merchant can subscribe to."""

    product_id: str
    product_name: str = ""
    event_types: list[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "WebhookProduct":
        events = []
        for item in data.get("eventTypes") or []:
            name = item.get("eventName") if isinstance(item, dict) else item
            if name:
                events.append(str(name))
        return cls(
            product_id=data.get("productId") or "",
            product_name=data.get("productName") or "",
            event_types=events,
        )
