import dataclasses
from decimal import Decimal

import pytest

from gateway_payments.capture_context import CAPTURE_CONTEXT_PATH, encode_capture_context_claims
from gateway_payments.config import REVIEW_ACCEPT_EVENT, REVIEW_REJECT_EVENT, GatewayCredentials
from gateway_payments.exceptions import ConfigurationError, CustomerNotFound, SequenceViolation, ValidationError
from gateway_payments.models import OutcomeKind, PaymentStatus, TransactionKind
from gateway_payments.operations import InMemoryCustomerDirectory
from gateway_payments.providers import CyberSourceProvider, create_payment_provider

PAYMENTS = "/pts/v2/payments"
CAPTURES = "/pts/v2/payments/tx-1/captures"


@pytest.fixture
def provider(settings, customers, transport, fake_sleep, clock):
    return CyberSourceProvider(settings=settings, customers=customers, transport=transport, sleep=fake_sleep, clock=clock)


@pytest.fixture
def authorized(provider, transport, payment, order):
    transport.add("POST", PAYMENTS, {"status": "AUTHORIZED", "id": "tx-1"})
    provider.authorize("transient-token", payment, order)
    transport.calls.clear()
    return payment


def test_single_message_authorization_marks_paid(provider, transport, payment, order):
    transport.add("POST", PAYMENTS, {"status": "AUTHORIZED", "id": "tx-1", "processorInformation": {"transactionId": "p-1"}})

    outcome = provider.authorize("transient-token", payment, order, single_message_mode=True)

    assert outcome.is_success
    assert not outcome.is_pending
    assert payment.status == PaymentStatus.PAID
    assert payment.outer_transaction_id == "tx-1"
    assert payment.captured_at is not None
    assert order.status == "Processing"
    assert transport.calls[0].json_body["processingInformation"] == {"capture": True}


def test_authorization_held_for_review(provider, transport, payment, order):
    transport.add("POST", PAYMENTS, {"status": "AUTHORIZED_PENDING_REVIEW", "id": "tx-1"})

    outcome = provider.authorize("transient-token", payment, order)

    assert outcome.is_pending
    assert payment.status == PaymentStatus.PENDING
    assert order.status == "New"


def test_authorization_for_unknown_customer(settings, transport, payment, order, fake_sleep):
    provider = CyberSourceProvider(settings=settings, customers=InMemoryCustomerDirectory(), transport=transport, sleep=fake_sleep)
    with pytest.raises(CustomerNotFound):
        provider.authorize("transient-token", payment, order)
    assert transport.calls == []
    assert payment.status == PaymentStatus.NEW


def test_partial_captures_use_next_sequence(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "PENDING", "id": "cap-1"}, {"status": "TRANSMITTED", "id": "cap-2"})

    first = provider.capture(authorized, order, amount="10", is_final=False)
    assert first.sequence_number == 1
    assert authorized.status == PaymentStatus.AUTHORIZED
    assert provider.next_capture_sequence(authorized) == 2

    second = provider.capture(authorized, order)
    assert second.sequence_number == 2
    assert authorized.status == PaymentStatus.PAID
    assert authorized.captured_amount == Decimal("30.50")

    options = [c.json_body["processingInformation"]["captureOptions"] for c in transport.calls]
    assert options == [{"captureSequenceNumber": 1}, {"captureSequenceNumber": 2, "totalCaptureCount": 2}]
    assert transport.calls[1].json_body["orderInformation"]["amountDetails"]["totalAmount"] == "20.50"


def test_out_of_order_sequence_is_rejected_without_call(provider, transport, authorized, order):
    with pytest.raises(SequenceViolation):
        provider.capture(authorized, order, sequence_number=3)
    assert transport.calls == []


def test_capture_before_authorization(provider, transport, payment, order):
    with pytest.raises(SequenceViolation):
        provider.capture(payment, order)
    assert transport.calls == []


def test_rejected_capture_leaves_payment_authorized(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "DECLINED", "id": "cap-1"})

    outcome = provider.capture(authorized, order)

    assert outcome.kind == OutcomeKind.FAILED
    assert authorized.status == PaymentStatus.AUTHORIZED
    assert authorized.capture_count == 0


def test_void_after_capture_is_rejected(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "PENDING", "id": "cap-1"})
    provider.capture(authorized, order, amount="5", is_final=False)
    transport.calls.clear()

    with pytest.raises(SequenceViolation):
        provider.void(authorized)
    assert transport.calls == []


def test_void_declined_leaves_payment_unchanged(provider, transport, authorized):
    transport.add("POST", "/pts/v2/payments/tx-1/voids", {"status": "DECLINED", "id": "void-1"})
    before = authorized.snapshot()

    outcome = provider.void(authorized)

    assert not outcome.is_success
    assert authorized.snapshot() == before


def test_void_accepted(provider, transport, authorized):
    transport.add("POST", "/pts/v2/payments/tx-1/voids", {"status": "VOIDED", "id": "void-1"})
    provider.void(authorized)
    assert authorized.status == PaymentStatus.VOIDED
    assert authorized.is_cancelled


def test_refund_pending_marks_refunded(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "PENDING", "id": "cap-1"})
    transport.add("POST", "/pts/v2/payments/tx-1/refunds", {"status": "PENDING", "id": "ref-1"})
    provider.capture(authorized, order)

    outcome = provider.refund(authorized, amount="10")

    assert outcome.kind == OutcomeKind.REFUND_ACCEPTED
    assert authorized.status == PaymentStatus.REFUNDED
    assert authorized.refundable_amount == Decimal("20.50")


def test_refund_of_new_payment_is_rejected(provider, transport, payment):
    with pytest.raises(SequenceViolation):
        provider.refund(payment)
    assert transport.calls == []


def test_refresh_resolves_pending_payment(provider, transport, payment, order):
    transport.add("POST", PAYMENTS, {"status": "PENDING_REVIEW", "id": "tx-1"})
    transport.add("POST", "/pts/v2/refresh-payment-status/tx-1", {"status": "AUTHORIZED", "id": "tx-1"})
    provider.authorize("transient-token", payment, order)

    outcome = provider.refresh_status(payment)

    assert outcome.kind == OutcomeKind.APPROVED
    assert payment.status == PaymentStatus.AUTHORIZED


def test_refresh_without_outer_id(provider, payment):
    with pytest.raises(SequenceViolation):
        provider.refresh_status(payment)


@pytest.mark.parametrize(
    "event_type, expected",
    [(REVIEW_ACCEPT_EVENT, PaymentStatus.AUTHORIZED), (REVIEW_REJECT_EVENT, PaymentStatus.DECLINED)],
)
def test_review_decision(provider, transport, payment, order, event_type, expected):
    transport.add("POST", PAYMENTS, {"status": "AUTHORIZED_PENDING_REVIEW", "id": "tx-1"})
    provider.authorize("transient-token", payment, order)

    provider.apply_review_decision(payment, event_type, order)

    assert payment.status == expected


def test_review_decision_requires_pending(provider, authorized):
    with pytest.raises(SequenceViolation):
        provider.apply_review_decision(authorized, REVIEW_ACCEPT_EVENT)


def test_review_decision_requires_event(provider, payment):
    with pytest.raises(ValidationError):
        provider.apply_review_decision(payment, "")


def test_issue_capture_context_uses_configured_card_types(provider, transport, rsa_key, token_factory, jwk_factory, settings):
    token = token_factory(rsa_key, encode_capture_context_claims("https://lib.js", "sha256-x", "enc-1"))
    transport.add("POST", CAPTURE_CONTEXT_PATH, token)
    transport.add("GET", "/flex/v2/public-keys/kid-1", jwk_factory(rsa_key, "kid-1"))

    context = provider.issue_capture_context("https://shop.example.com")

    assert context.key_id == "enc-1"
    assert transport.calls[0].json_body["allowedCardNetworks"] == settings.card_types


def test_issue_capture_context_with_card_type_string(provider, transport, rsa_key, token_factory, jwk_factory):
    token = token_factory(rsa_key, encode_capture_context_claims("https://lib.js", "sha256-x", "enc-1"))
    transport.add("POST", CAPTURE_CONTEXT_PATH, token)
    transport.add("GET", "/flex/v2/public-keys/kid-1", jwk_factory(rsa_key, "kid-1"))

    provider.issue_capture_context("https://shop.example.com", card_types="VISA, AMEX")

    assert transport.calls[0].json_body["allowedCardNetworks"] == ["VISA", "AMEX"]


def test_missing_credentials(settings, transport):
    broken = dataclasses.replace(settings, sandbox_credentials=GatewayCredentials("", "", ""))
    with pytest.raises(ConfigurationError):
        CyberSourceProvider(settings=broken, transport=transport)


def test_provider_info(provider):
    info = provider.get_provider_info()
    assert info["name"] == "CyberSourceProvider"
    assert provider.supports_card_type("visa")


def test_create_payment_provider(settings, transport):
    provider = create_payment_provider("CyberSource", settings=settings, transport=transport)
    assert isinstance(provider, CyberSourceProvider)


def test_create_unknown_provider():
    with pytest.raises(ValueError):
        create_payment_provider("stripe")


def test_captures_are_recorded(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "PENDING", "id": "cap-1"})
    provider.capture(authorized, order, notes="ship")
    [capture] = authorized.transactions_of(TransactionKind.CAPTURE)
    assert capture.note == "ship"
    assert capture.outer_id == "cap-1"


def test_refresh_of_captured_payment_is_rejected(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "PENDING", "id": "cap-1"})
    transport.add("POST", "/pts/v2/refresh-payment-status/tx-1", {"status": "TRANSMITTED", "id": "tx-1"})
    provider.capture(authorized, order)
    before = authorized.snapshot()

    with pytest.raises(SequenceViolation):
        provider.refresh_status(authorized)

    assert authorized.status == PaymentStatus.PAID
    assert authorized.snapshot() == before
    assert transport.calls_to("POST", "/pts/v2/refresh-payment-status/tx-1") == []


def test_refresh_of_voided_payment_is_rejected(provider, transport, authorized):
    transport.add("POST", "/pts/v2/payments/tx-1/voids", {"status": "VOIDED", "id": "void-1"})
    transport.add("POST", "/pts/v2/refresh-payment-status/tx-1", {"status": "AUTHORIZED", "id": "tx-1"})
    provider.void(authorized)

    with pytest.raises(SequenceViolation):
        provider.refresh_status(authorized)

    assert authorized.status == PaymentStatus.VOIDED
    assert authorized.is_cancelled
    assert transport.calls_to("POST", "/pts/v2/refresh-payment-status/tx-1") == []


def test_refresh_approval_moves_order_to_processing(provider, transport, payment, order):
    transport.add("POST", PAYMENTS, {"status": "PENDING_REVIEW", "id": "tx-1"})
    transport.add("POST", "/pts/v2/refresh-payment-status/tx-1", {"status": "AUTHORIZED", "id": "tx-1"})
    provider.authorize("transient-token", payment, order)
    assert order.status == "New"

    provider.refresh_status(payment, order=order)

    assert payment.status == PaymentStatus.AUTHORIZED
    assert order.status == "Processing"


def test_capture_above_uncaptured_total_is_rejected(provider, transport, authorized, order):
    transport.add("POST", CAPTURES, {"status": "PENDING", "id": "cap-1"})
    provider.capture(authorized, order, amount="20", is_final=False)
    transport.calls.clear()

    with pytest.raises(ValidationError) as exc_info:
        provider.capture(authorized, order, amount="20")

    assert exc_info.value.constraints == {"max": "10.50"}
    assert transport.calls == []
    assert authorized.capture_count == 1


def test_get_transaction(provider, transport):
    transport.add("GET", "/tss/v2/transactions/tx-1", {"id": "tx-1", "applicationInformation": {"reasonCode": "100"}})

    details = provider.get_transaction("tx-1")

    assert details["id"] == "tx-1"
    assert transport.calls[0].sandbox is True


def test_get_transaction_in_production(provider, transport):
    transport.add("GET", "/tss/v2/transactions/tx-1", {"id": "tx-1"})
    provider.get_transaction("tx-1", sandbox=False)
    assert transport.calls[0].sandbox is False


def test_list_webhook_products(provider, transport):
    transport.add(
        "GET",
        "/notification-subscriptions/v1/products/test_merchant",
        [{"productId": "decisionManager", "productName": "Decision Manager", "eventTypes": [{"eventName": "risk.casemanagement.decision.accept"}]}],
    )

    [product] = provider.list_webhook_products()

    assert product.product_id == "decisionManager"
    assert product.event_types == ["risk.casemanagement.decision.accept"]
