"""
CyberSource gateway provider for the Gateway Payments SDK.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence, Union

import requests

from ..capture_context import CaptureContextIssuer
from ..config import GatewaySettings, parse_card_types
from ..exceptions import SequenceViolation, ValidationError
from ..lifecycle import LifecycleStatusMapper, Operation
from ..models import (
    CaptureContext,
    LifecycleOutcome,
    Order,
    PaymentRecord,
    PaymentRequestContext,
    PaymentStatus,
    WebhookProduct,
    WebhookSubscription,
)
from ..operations import CustomerDirectory, InMemoryCustomerDirectory, PaymentOperationClient
from ..signing import SigningKeyVerifier
from ..transport import GatewayTransport
from ..utils import get_current_timestamp, to_decimal
from ..webhooks import WebhookSubscriptionManager
from .base import PaymentProvider, ProviderCapabilities

logger = logging.getLogger(__name__)

Amount = Union[Decimal, float, int, str]


class CyberSourceProvider(PaymentProvider):
    """
    CyberSource REST gateway provider.

    Wires capture-context issuance, payment operations, lifecycle mapping and
    webhook subscriptions together. Preconditions (customer present, operation
    order) are checked before any gateway call, and mapped outcomes are
    applied to the caller's payment record.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        customers: Optional[CustomerDirectory] = None,
        transport: Optional[GatewayTransport] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = get_current_timestamp,
    ):
        self.settings = settings or GatewaySettings.from_env()
        self.customers = customers if customers is not None else InMemoryCustomerDirectory()
        self.transport = transport or GatewayTransport(self.settings, session_factory=session_factory)
        self.verifier = SigningKeyVerifier(self.transport)
        self.issuer = CaptureContextIssuer(
            self.transport,
            self.verifier,
            verify_signature=self.settings.verify_signature,
            retry_count=self.settings.signature_retry_count,
            retry_backoff=self.settings.signature_retry_backoff,
            sleep=sleep,
        )
        self.client = PaymentOperationClient(self.transport, self.customers)
        self.mapper = LifecycleStatusMapper(clock=clock)
        self.webhooks = WebhookSubscriptionManager(self.transport, self.settings)
        super().__init__("CyberSourceProvider")

    def _get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            single_message_mode=self.settings.single_message_mode,
            card_types=list(self.settings.card_types),
        )

    def _validate_configuration(self) -> None:
        environment = "sandbox" if self.settings.sandbox else "production"
        self.settings.credentials_for(self.settings.sandbox).validate(environment)

    def _context(self, payment: Optional[PaymentRecord] = None, sandbox: Optional[bool] = None, single_message_mode: Optional[bool] = None) -> PaymentRequestContext:
        return PaymentRequestContext(
            sandbox=self.settings.sandbox if sandbox is None else sandbox,
            single_message_mode=self.settings.single_message_mode if single_message_mode is None else single_message_mode,
            outer_payment_id=payment.outer_transaction_id if payment is not None else None,
        )

    @staticmethod
    def _require_status(payment: PaymentRecord, operation: str, allowed: Sequence[PaymentStatus]) -> None:
        if payment.status not in allowed:
            raise SequenceViolation(
                f"Cannot {operation} a payment in status {payment.status.value}",
                payment_id=payment.id,
                operation=operation,
                current_status=payment.status.value,
            )

    def issue_capture_context(
        self,
        store_url: str,
        card_types: Optional[Union[str, Sequence[str]]] = None,
        sandbox: Optional[bool] = None,
    ) -> CaptureContext:
        if isinstance(card_types, str):
            card_types = parse_card_types(card_types)
        card_types = list(card_types) if card_types else list(self.settings.card_types)
        sandbox = self.settings.sandbox if sandbox is None else sandbox
        return self.issuer.issue(store_url, card_types, sandbox)

    def authorize(
        self,
        token: str,
        payment: PaymentRecord,
        order: Order,
        sandbox: Optional[bool] = None,
        single_message_mode: Optional[bool] = None,
    ) -> LifecycleOutcome:
        context = self._context(sandbox=sandbox, single_message_mode=single_message_mode)
        result = self.client.authorize(token, payment, order, context)
        outcome = self.mapper.map_authorization(result, single_message_mode=context.single_message_mode, amount=payment.amount)
        self.mapper.apply(outcome, payment, order)
        return outcome

    def next_capture_sequence(self, payment: PaymentRecord) -> int:
        """Sequence number for the next capture against this authorization."""
        return payment.capture_count + 1

    def capture(
        self,
        payment: PaymentRecord,
        order: Order,
        amount: Optional[Amount] = None,
        sequence_number: Optional[int] = None,
        is_final: bool = True,
        notes: Optional[str] = None,
    ) -> LifecycleOutcome:
        """
        Capture against the payment's authorization.

        The sequence number is computed from the captures already recorded. A
        caller-supplied number must match it.

        Raises:
            SequenceViolation: If the payment is not authorized, has no gateway
                transaction id, or the sequence number is out of order
        """
        self._require_status(payment, "capture", (PaymentStatus.AUTHORIZED,))
        expected = self.next_capture_sequence(payment)
        if sequence_number is not None and sequence_number != expected:
            raise SequenceViolation(
                f"Capture sequence number {sequence_number} is out of order; expected {expected}",
                payment_id=payment.id,
                operation="capture",
                current_status=payment.status.value,
            )
        value = to_decimal(amount) if amount is not None else payment.amount - payment.captured_amount

        result = self.client.capture(
            payment,
            order,
            self._context(payment),
            amount=value,
            sequence_number=expected,
            is_final=is_final,
            notes=notes,
        )
        outcome = self.mapper.map_capture(result, is_final=is_final, amount=value, sequence_number=expected, notes=notes)
        self.mapper.apply(outcome, payment, order)
        return outcome

    def refund(self, payment: PaymentRecord, amount: Optional[Amount] = None) -> LifecycleOutcome:
        self._require_status(payment, "refund", (PaymentStatus.AUTHORIZED, PaymentStatus.PAID, PaymentStatus.REFUNDED))
        if payment.refundable_amount <= 0:
            raise SequenceViolation(
                f"Payment {payment.id} has nothing left to refund",
                payment_id=payment.id,
                operation="refund",
                current_status=payment.status.value,
            )
        value = to_decimal(amount) if amount is not None else payment.refundable_amount

        result = self.client.refund(payment, self._context(payment), amount=value)
        outcome = self.mapper.map_refund(result, amount=value)
        self.mapper.apply(outcome, payment)
        return outcome

    def void(self, payment: PaymentRecord) -> LifecycleOutcome:
        self._require_status(payment, "void", (PaymentStatus.AUTHORIZED,))
        if payment.capture_count:
            raise SequenceViolation(
                f"Cannot void payment {payment.id} after {payment.capture_count} capture(s)",
                payment_id=payment.id,
                operation="void",
                current_status=payment.status.value,
            )
        result = self.client.void(payment, self._context(payment))
        outcome = self.mapper.map_void(result)
        self.mapper.apply(outcome, payment)
        return outcome

    def refresh_status(self, payment: PaymentRecord, outer_id: Optional[str] = None, order: Optional[Order] = None) -> LifecycleOutcome:
        """
        Re-query the gateway for a payment held for review and apply the answer.

        Raises:
            SequenceViolation: If the payment is not pending or has no gateway transaction id
        """
        self._require_status(payment, "refresh", (PaymentStatus.PENDING,))
        outer_id = outer_id or payment.outer_transaction_id
        if not outer_id:
            raise SequenceViolation(
                f"Cannot refresh payment {payment.id} without a gateway transaction id",
                payment_id=payment.id,
                operation="refresh_status",
                current_status=payment.status.value,
            )
        context = self._context(payment)
        result = self.client.refresh_status(outer_id, context)
        outcome = self.mapper.map_authorization(
            result,
            single_message_mode=context.single_message_mode,
            amount=payment.amount,
            operation=Operation.REFRESH,
        )
        self.mapper.apply(outcome, payment, order)
        return outcome

    def apply_review_decision(self, payment: PaymentRecord, event_type: str, order: Optional[Order] = None) -> LifecycleOutcome:
        if not event_type:
            raise ValidationError("Event type is required", field="event_type")
        self._require_status(payment, "apply review decision to", (PaymentStatus.PENDING,))
        outcome = self.mapper.map_review_decision(
            event_type,
            payment.outer_transaction_id,
            single_message_mode=self.settings.single_message_mode,
        )
        self.mapper.apply(outcome, payment, order)
        return outcome

    def register_webhooks(self) -> Optional[WebhookSubscription]:
        return self.webhooks.register()

    def unregister_webhooks(self) -> int:
        return self.webhooks.unregister()

    def list_webhooks(self) -> list[WebhookSubscription]:
        return self.webhooks.list_subscriptions()

    def list_webhook_products(self) -> list[WebhookProduct]:
        return self.webhooks.list_products()

    def get_transaction(self, transaction_id: str, sandbox: Optional[bool] = None) -> dict[str, Any]:
        """Look up a gateway transaction's details in the default or given environment."""
        sandbox = self.settings.sandbox if sandbox is None else sandbox
        return self.client.get_transaction(transaction_id, sandbox)
