"""
Lifecycle status mapping.

Classifies gateway results into outcomes through one explicit table per
operation and applies outcomes to the caller's payment record. Every table
has a default arm: a status the table does not name becomes a failure
carrying the gateway's own error detail, never a success.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .config import REVIEW_ACCEPT_EVENT, REVIEW_REJECT_EVENT
from .models import (
    GatewayOperationResult,
    GatewayStatus,
    LifecycleOutcome,
    Order,
    OutcomeKind,
    PaymentRecord,
    PaymentStatus,
    PaymentTransaction,
    TransactionKind,
)
from .utils import get_current_timestamp, redact_message

logger = logging.getLogger(__name__)

UNMAPPED_STATUS_ERROR = "UNMAPPED_GATEWAY_STATUS"
CAPTURE_REJECTED_ERROR = "CAPTURE_REJECTED"
GENERIC_FAILURE_MESSAGE = "Payment processing failed"

DECLINED_PREFIX = "Your transaction was declined: "
HELD_FOR_REVIEW_PREFIX = "Your transaction was held for review: "
PROCESSING_ERROR_PREFIX = "There was an error processing your transaction: "

APPROVED_ORDER_STATUS = "Processing"


class Operation(Enum):
    AUTHORIZE = "authorize"
    CAPTURE = "capture"
    REFUND = "refund"
    VOID = "void"
    REFRESH = "refresh"


_PENDING_REVIEW_STATUSES = (
    GatewayStatus.PENDING_AUTHENTICATION,
    GatewayStatus.PARTIAL_AUTHORIZED,
    GatewayStatus.AUTHORIZED_PENDING_REVIEW,
    GatewayStatus.PENDING_REVIEW,
    GatewayStatus.PENDING,
    GatewayStatus.TRANSMITTED,
)

AUTHORIZE_TABLE: dict[GatewayStatus, OutcomeKind] = {
    GatewayStatus.AUTHORIZED: OutcomeKind.APPROVED,
    GatewayStatus.DECLINED: OutcomeKind.DECLINED,
    GatewayStatus.AUTHORIZED_RISK_DECLINED: OutcomeKind.DECLINED,
    GatewayStatus.INVALID_REQUEST: OutcomeKind.INVALID,
    **{status: OutcomeKind.PENDING_REVIEW for status in _PENDING_REVIEW_STATUSES},
}

CAPTURE_TABLE: dict[GatewayStatus, OutcomeKind] = {
    GatewayStatus.PENDING: OutcomeKind.CAPTURE_ACCEPTED,
    GatewayStatus.TRANSMITTED: OutcomeKind.CAPTURE_ACCEPTED,
}

REFUND_TABLE: dict[GatewayStatus, OutcomeKind] = {
    GatewayStatus.PENDING: OutcomeKind.REFUND_ACCEPTED,
}

VOID_TABLE: dict[GatewayStatus, OutcomeKind] = {
    GatewayStatus.VOIDED: OutcomeKind.VOID_ACCEPTED,
    GatewayStatus.CANCELLED: OutcomeKind.VOID_ACCEPTED,
}

# Refresh re-reads an authorization, so it shares the authorize table
STATUS_TABLES: dict[Operation, dict[GatewayStatus, OutcomeKind]] = {
    Operation.AUTHORIZE: AUTHORIZE_TABLE,
    Operation.CAPTURE: CAPTURE_TABLE,
    Operation.REFUND: REFUND_TABLE,
    Operation.VOID: VOID_TABLE,
    Operation.REFRESH: AUTHORIZE_TABLE,
}

_SUCCESS_KINDS = {
    OutcomeKind.APPROVED,
    OutcomeKind.PENDING_REVIEW,
    OutcomeKind.CAPTURE_ACCEPTED,
    OutcomeKind.REFUND_ACCEPTED,
    OutcomeKind.VOID_ACCEPTED,
}


def buyer_reason(result: GatewayOperationResult) -> str:
    """Human-readable reason text, without processor response codes."""
    if result.error_message:
        return result.error_message
    if result.error_reason:
        return result.error_reason.replace("_", " ").lower()
    return "no reason was given"


class LifecycleStatusMapper:
    """
    Maps gateway results to lifecycle outcomes and applies them.

    Mapping is pure. Only ``apply`` touches the payment record (and the
    order status on approval).
    """

    def __init__(self, clock: Callable[[], datetime] = get_current_timestamp):
        self.clock = clock

    @staticmethod
    def classify(operation: Operation, status: GatewayStatus) -> Optional[OutcomeKind]:
        """Look up ``status`` in the operation's table, None when the table does not name it."""
        return STATUS_TABLES[operation].get(status)

    @staticmethod
    def _unmapped(operation: Operation, result: GatewayOperationResult) -> LifecycleOutcome:
        logger.warning(
            "Unmapped gateway status %r for %s; raw payload: %s",
            result.raw_status,
            operation.value,
            redact_message(result.raw_text()),
        )
        return LifecycleOutcome(
            kind=OutcomeKind.FAILED,
            is_success=False,
            outer_id=result.transaction_id,
            error_code=UNMAPPED_STATUS_ERROR,
            error_message=result.reason_text or GENERIC_FAILURE_MESSAGE,
            raw_status=result.raw_status,
            raw=result.raw,
        )

    def map_authorization(
        self,
        result: GatewayOperationResult,
        single_message_mode: bool = False,
        amount: Optional[Decimal] = None,
        operation: Operation = Operation.AUTHORIZE,
    ) -> LifecycleOutcome:
        """Map an authorize (or refresh-status) result."""
        kind = self.classify(operation, result.status)
        if kind is None:
            return self._unmapped(operation, result)

        common = dict(
            kind=kind,
            is_success=kind in _SUCCESS_KINDS,
            raw_status=result.raw_status,
            processor_transaction_id=result.processor_transaction_id,
            processor_response_code=result.processor_response_code,
            amount=amount,
            raw=result.raw,
        )
        if kind == OutcomeKind.APPROVED:
            return LifecycleOutcome(
                new_status=PaymentStatus.PAID if single_message_mode else PaymentStatus.AUTHORIZED,
                outer_id=result.transaction_id,
                note=f"Transaction ID: {result.processor_transaction_id or result.transaction_id}",
                **common,
            )
        if kind == OutcomeKind.DECLINED:
            return LifecycleOutcome(
                new_status=PaymentStatus.DECLINED,
                error_message=DECLINED_PREFIX + buyer_reason(result),
                **common,
            )
        if kind == OutcomeKind.INVALID:
            return LifecycleOutcome(
                new_status=PaymentStatus.ERROR,
                error_message=PROCESSING_ERROR_PREFIX + buyer_reason(result),
                **common,
            )
        return LifecycleOutcome(
            new_status=PaymentStatus.PENDING,
            is_pending=True,
            outer_id=result.transaction_id,
            error_message=HELD_FOR_REVIEW_PREFIX + buyer_reason(result),
            **common,
        )

    def map_capture(
        self,
        result: GatewayOperationResult,
        is_final: bool,
        amount: Decimal,
        sequence_number: int,
        notes: Optional[str] = None,
    ) -> LifecycleOutcome:
        """Map a capture result. Statuses other than PENDING/TRANSMITTED surface the raw response."""
        if self.classify(Operation.CAPTURE, result.status) is None:
            raw_text = result.raw_text()
            logger.error("Capture %d was not accepted (status %r): %s", sequence_number, result.raw_status, redact_message(raw_text))
            return LifecycleOutcome(
                kind=OutcomeKind.FAILED,
                is_success=False,
                outer_id=result.transaction_id,
                error_code=CAPTURE_REJECTED_ERROR,
                error_message=raw_text,
                raw_status=result.raw_status,
                raw=result.raw,
            )
        return LifecycleOutcome(
            kind=OutcomeKind.CAPTURE_ACCEPTED,
            is_success=True,
            new_status=PaymentStatus.PAID if is_final else PaymentStatus.AUTHORIZED,
            outer_id=result.transaction_id,
            raw_status=result.raw_status,
            processor_transaction_id=result.processor_transaction_id,
            processor_response_code=result.processor_response_code,
            amount=amount,
            sequence_number=sequence_number,
            note=notes or f"Capture {sequence_number}{' (final)' if is_final else ''}",
            raw=result.raw,
        )

    def map_refund(self, result: GatewayOperationResult, amount: Decimal) -> LifecycleOutcome:
        if self.classify(Operation.REFUND, result.status) is None:
            return self._unmapped(Operation.REFUND, result)
        return LifecycleOutcome(
            kind=OutcomeKind.REFUND_ACCEPTED,
            is_success=True,
            new_status=PaymentStatus.REFUNDED,
            outer_id=result.transaction_id,
            raw_status=result.raw_status,
            processor_transaction_id=result.processor_transaction_id,
            processor_response_code=result.processor_response_code,
            amount=amount,
            note=f"Refund {result.transaction_id or ''}".strip(),
            raw=result.raw,
        )

    def map_void(self, result: GatewayOperationResult) -> LifecycleOutcome:
        if self.classify(Operation.VOID, result.status) is None:
            return self._unmapped(Operation.VOID, result)
        return LifecycleOutcome(
            kind=OutcomeKind.VOID_ACCEPTED,
            is_success=True,
            new_status=PaymentStatus.VOIDED,
            outer_id=result.transaction_id,
            raw_status=result.raw_status,
            processor_transaction_id=result.processor_transaction_id,
            note=f"Void {result.transaction_id or ''}".strip(),
            raw=result.raw,
        )

    @staticmethod
    def map_review_decision(
        event_type: str,
        outer_id: Optional[str],
        single_message_mode: bool = False,
    ) -> LifecycleOutcome:
        """Map a fraud-review decision notification for a payment held for review."""
        if event_type == REVIEW_ACCEPT_EVENT:
            return LifecycleOutcome(
                kind=OutcomeKind.APPROVED,
                is_success=True,
                new_status=PaymentStatus.PAID if single_message_mode else PaymentStatus.AUTHORIZED,
                outer_id=outer_id,
                raw_status=event_type,
                note="Accepted during fraud review",
            )
        if event_type == REVIEW_REJECT_EVENT:
            return LifecycleOutcome(
                kind=OutcomeKind.DECLINED,
                is_success=False,
                new_status=PaymentStatus.DECLINED,
                outer_id=outer_id,
                raw_status=event_type,
                error_message=DECLINED_PREFIX + "rejected during fraud review",
            )
        logger.warning("Unhandled review decision event %r", event_type)
        return LifecycleOutcome(
            kind=OutcomeKind.FAILED,
            is_success=False,
            outer_id=outer_id,
            error_code=UNMAPPED_STATUS_ERROR,
            error_message=f"Unsupported review decision event: {event_type}",
            raw_status=event_type,
        )

    def _record(self, payment: PaymentRecord, outcome: LifecycleOutcome, kind: TransactionKind, amount: Decimal, now: datetime) -> None:
        payment.transactions.append(
            PaymentTransaction(
                kind=kind,
                amount=amount,
                currency=payment.currency,
                outer_id=outcome.outer_id,
                processor_transaction_id=outcome.processor_transaction_id,
                response_code=outcome.processor_response_code,
                note=outcome.note or "",
                response_data=json.dumps(outcome.raw, sort_keys=True, default=str) if outcome.raw else "",
                processed_at=now,
                sequence_number=outcome.sequence_number,
            )
        )

    def apply(self, outcome: LifecycleOutcome, payment: PaymentRecord, order: Optional[Order] = None) -> None:
        """
        Write an outcome onto the payment record.

        Failure outcomes leave the record untouched.
        """
        if outcome.kind == OutcomeKind.FAILED:
            return

        now = self.clock()
        if outcome.kind == OutcomeKind.APPROVED:
            payment.status = outcome.new_status
            payment.is_approved = True
            payment.authorized_at = now
            if outcome.new_status == PaymentStatus.PAID:
                payment.captured_at = now
            if outcome.outer_id:
                payment.outer_transaction_id = outcome.outer_id
            payment.add_comment(f"Paid successfully. Transaction info {payment.outer_transaction_id}")
            kind = TransactionKind.SALE if outcome.new_status == PaymentStatus.PAID else TransactionKind.AUTHORIZATION
            already_recorded = any(t.outer_id == payment.outer_transaction_id for t in payment.transactions_of(kind))
            if not already_recorded:
                self._record(payment, outcome, kind, outcome.amount if outcome.amount is not None else payment.amount, now)
            if order is not None:
                order.status = APPROVED_ORDER_STATUS

        elif outcome.kind in (OutcomeKind.DECLINED, OutcomeKind.INVALID):
            payment.status = outcome.new_status
            payment.add_comment(outcome.error_message)

        elif outcome.kind == OutcomeKind.PENDING_REVIEW:
            payment.status = PaymentStatus.PENDING
            if outcome.outer_id:
                payment.outer_transaction_id = outcome.outer_id
            payment.add_comment(outcome.error_message)

        elif outcome.kind == OutcomeKind.CAPTURE_ACCEPTED:
            payment.status = outcome.new_status
            payment.captured_at = now
            self._record(payment, outcome, TransactionKind.CAPTURE, outcome.amount, now)

        elif outcome.kind == OutcomeKind.REFUND_ACCEPTED:
            payment.status = PaymentStatus.REFUNDED
            payment.refunded_at = now
            self._record(payment, outcome, TransactionKind.REFUND, outcome.amount, now)

        elif outcome.kind == OutcomeKind.VOID_ACCEPTED:
            payment.status = PaymentStatus.VOIDED
            payment.is_cancelled = True
            payment.voided_at = now
            payment.cancelled_at = now
            self._record(payment, outcome, TransactionKind.VOID, payment.amount, now)

        logger.info("Payment %s is now %s after %s", payment.id, payment.status.value, outcome.kind.value)
