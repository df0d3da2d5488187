"""
Gateway payment operations.

Builds authorize, capture, refund, void and refresh-status requests, sends
them through the signed transport and returns the gateway's answer as an
un-interpreted GatewayOperationResult. Classification is left to the
lifecycle mapper. Transaction lookups return the gateway's details as-is.
"""

import logging
from decimal import Decimal
from typing import Any, Optional, Protocol, Union

from .exceptions import CustomerNotFound, GatewayApiError, SequenceViolation, ValidationError
from .models import Contact, GatewayOperationResult, Order, PaymentRecord, PaymentRequestContext
from .transport import GatewayTransport
from .utils import format_amount, to_decimal

logger = logging.getLogger(__name__)

PAYMENTS_PATH = "/pts/v2/payments"
CAPTURES_PATH = "/pts/v2/payments/{id}/captures"
REFUNDS_PATH = "/pts/v2/payments/{id}/refunds"
VOIDS_PATH = "/pts/v2/payments/{id}/voids"
REFRESH_STATUS_PATH = "/pts/v2/refresh-payment-status/{id}"
TRANSACTION_PATH = "/tss/v2/transactions/{id}"


class CustomerDirectory(Protocol):
    """Resolves the contact behind an order's customer id."""

    def find_contact(self, customer_id: str) -> Optional[Contact]: ...


class InMemoryCustomerDirectory:
    """Dict-backed directory, used by the CLI and tests."""

    def __init__(self, contacts: Optional[dict[str, Contact]] = None):
        self.contacts = dict(contacts or {})

    def add(self, customer_id: str, contact: Contact) -> None:
        self.contacts[customer_id] = contact

    def find_contact(self, customer_id: str) -> Optional[Contact]:
        return self.contacts.get(customer_id)


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None and v != ""}


def build_bill_to(payment: PaymentRecord, contact: Contact) -> dict[str, Any]:
    address = payment.billing_address
    bill_to = {
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "middleName": contact.middle_name,
        "email": contact.email,
    }
    if address is not None:
        bill_to.update(
            {
                "address1": address.line1,
                "address2": address.line2,
                "locality": address.city,
                "administrativeArea": address.region_name,
                "postalCode": address.postal_code,
                "country": address.country_name,
            }
        )
    return _compact(bill_to)


def build_line_items(order: Order) -> list[dict[str, Any]]:
    return [
        {
            "productCode": item.id,
            "productName": item.name,
            "productSku": item.sku,
            "quantity": int(item.quantity),
            "unitPrice": format_amount(item.price),
            "totalAmount": format_amount(item.placed_price),
            "discountAmount": format_amount(item.discount_amount),
            "taxAmount": format_amount(item.tax_total),
            "gift": bool(item.is_gift),
        }
        for item in order.items
    ]


def build_order_amount_details(order: Order) -> dict[str, str]:
    return {
        "totalAmount": format_amount(order.total),
        "currency": order.currency,
        "discountAmount": format_amount(order.discount_amount),
        "taxAmount": format_amount(order.tax_total),
    }


class PaymentOperationClient:
    """Sends payment operations to the gateway."""

    def __init__(self, transport: GatewayTransport, customers: CustomerDirectory):
        self.transport = transport
        self.customers = customers

    def resolve_contact(self, order: Order) -> Contact:
        """
        Resolve the contact behind ``order``.

        Raises:
            CustomerNotFound: If the directory has no contact for the order's customer
        """
        contact = self.customers.find_contact(order.customer_id) if order.customer_id else None
        if contact is None:
            raise CustomerNotFound(
                f"User with id {order.customer_id} not found",
                customer_id=order.customer_id,
                order_id=order.id,
            )
        return contact

    def _send(self, path: str, body: dict[str, Any], context: PaymentRequestContext) -> GatewayOperationResult:
        try:
            response = self.transport.post(path, sandbox=context.sandbox, json_body=body)
        except GatewayApiError as e:
            # Validation failures come back as 4xx bodies that still carry a status
            payload = e.response_json()
            if payload and payload.get("status"):
                logger.info("Gateway rejected %s with status %s", path, payload.get("status"))
                return GatewayOperationResult.from_response(payload)
            raise

        try:
            payload = response.json()
        except ValueError:
            raise GatewayApiError(
                "Gateway returned a body that is not JSON",
                method="POST",
                url=path,
                status_code=response.status_code,
                response_text=response.text,
            )
        result = GatewayOperationResult.from_response(payload)
        logger.info("Gateway %s returned status %s (id %s)", path, result.raw_status, result.transaction_id)
        return result

    @staticmethod
    def _require_outer_id(payment: PaymentRecord, context: PaymentRequestContext, operation: str) -> str:
        outer_id = context.outer_payment_id or payment.outer_transaction_id
        if not outer_id:
            raise SequenceViolation(
                f"Cannot {operation} payment {payment.id} without a gateway transaction id",
                payment_id=payment.id,
                operation=operation,
                current_status=payment.status.value,
            )
        return outer_id

    @staticmethod
    def _positive_amount(amount: Union[Decimal, float, int, str], field_name: str) -> Decimal:
        try:
            value = to_decimal(amount)
        except ValueError:
            raise ValidationError(f"Invalid {field_name}", field=field_name, value=amount)
        if value <= 0:
            raise ValidationError(f"{field_name.capitalize()} must be positive", field=field_name, value=str(value))
        return value

    def authorize(
        self,
        token: str,
        payment: PaymentRecord,
        order: Order,
        context: PaymentRequestContext,
    ) -> GatewayOperationResult:
        """
        Authorize (or, in single-message mode, sell) a tokenized card.

        Args:
            token: Transient token produced by the checkout page
            payment: Payment being authorized
            order: Order the payment belongs to
            context: Environment and processing mode for this call

        Returns:
            GatewayOperationResult: The gateway's answer, uninterpreted

        Raises:
            CustomerNotFound: Before any gateway call, if the order's customer is unknown
            ValidationError: If the token is empty
            TransportError: If the gateway cannot be reached
        """
        if not token or not isinstance(token, str):
            raise ValidationError("Transient token is required", field="token")
        contact = self.resolve_contact(order)

        order_information = {
            "billTo": build_bill_to(payment, contact),
            "lineItems": build_line_items(order),
            "amountDetails": build_order_amount_details(order),
        }
        body = {
            "clientReferenceInformation": {"code": order.id},
            "orderInformation": order_information,
            "tokenInformation": {"transientTokenJwt": token},
        }
        if context.single_message_mode:
            body["processingInformation"] = {"capture": True}

        logger.info("Authorizing payment %s for order %s (sale=%s)", payment.id, order.id, context.single_message_mode)
        return self._send(PAYMENTS_PATH, body, context)

    def capture(
        self,
        payment: PaymentRecord,
        order: Order,
        context: PaymentRequestContext,
        amount: Optional[Union[Decimal, float, int, str]] = None,
        sequence_number: int = 1,
        is_final: bool = True,
        notes: Optional[str] = None,
    ) -> GatewayOperationResult:
        """
        Capture funds against a prior authorization.

        ``sequence_number`` is 1-based per authorization; a final capture also
        sends the total capture count so the gateway closes the authorization.
        """
        outer_id = self._require_outer_id(payment, context, "capture")
        if sequence_number < 1:
            raise ValidationError("Capture sequence number must be at least 1", field="sequence_number", value=sequence_number)
        uncaptured = payment.amount - payment.captured_amount
        value = self._positive_amount(uncaptured if amount is None else amount, "amount")
        if value > uncaptured:
            raise ValidationError(
                "Capture amount exceeds the uncaptured total",
                field="amount",
                value=str(value),
                constraints={"max": str(uncaptured)},
            )

        capture_options: dict[str, Any] = {"captureSequenceNumber": sequence_number}
        if is_final:
            capture_options["totalCaptureCount"] = sequence_number
        body: dict[str, Any] = {
            "clientReferenceInformation": {"code": order.id},
            "processingInformation": {"captureOptions": capture_options},
            "orderInformation": {
                "amountDetails": {"totalAmount": format_amount(value), "currency": payment.currency},
            },
        }
        if notes:
            body["merchantDefinedInformation"] = [{"key": "1", "value": notes}]

        logger.info("Capturing %s %s on %s (sequence %d, final=%s)", format_amount(value), payment.currency, outer_id, sequence_number, is_final)
        return self._send(CAPTURES_PATH.format(id=outer_id), body, context)

    def refund(
        self,
        payment: PaymentRecord,
        context: PaymentRequestContext,
        amount: Optional[Union[Decimal, float, int, str]] = None,
    ) -> GatewayOperationResult:
        """Refund a captured payment; the amount defaults to what is still refundable."""
        outer_id = self._require_outer_id(payment, context, "refund")
        value = self._positive_amount(payment.refundable_amount if amount is None else amount, "amount")
        if value > payment.refundable_amount:
            raise ValidationError(
                "Refund amount exceeds the refundable total",
                field="amount",
                value=str(value),
                constraints={"max": str(payment.refundable_amount)},
            )
        body = {
            "clientReferenceInformation": {"code": payment.id},
            "orderInformation": {
                "amountDetails": {"totalAmount": format_amount(value), "currency": payment.currency},
            },
        }
        logger.info("Refunding %s %s on %s", format_amount(value), payment.currency, outer_id)
        return self._send(REFUNDS_PATH.format(id=outer_id), body, context)

    def void(self, payment: PaymentRecord, context: PaymentRequestContext) -> GatewayOperationResult:
        outer_id = self._require_outer_id(payment, context, "void")
        body = {"clientReferenceInformation": {"code": payment.id}}
        logger.info("Voiding %s", outer_id)
        return self._send(VOIDS_PATH.format(id=outer_id), body, context)

    def refresh_status(self, outer_id: str, context: PaymentRequestContext) -> GatewayOperationResult:
        """Re-query the gateway for the current status of a transaction."""
        if not outer_id:
            raise ValidationError("Gateway transaction id is required", field="outer_id")
        body = {"clientReferenceInformation": {"code": outer_id}}
        return self._send(REFRESH_STATUS_PATH.format(id=outer_id), body, context)

    def get_transaction(self, transaction_id: str, sandbox: bool) -> dict[str, Any]:
        """
        Fetch the gateway's full record of one transaction.

        Returns:
            dict: The transaction details as the gateway reports them

        Raises:
            ValidationError: If the transaction id is empty
            GatewayApiError: If the gateway does not know the transaction (404) or fails
        """
        if not transaction_id:
            raise ValidationError("Gateway transaction id is required", field="transaction_id")
        response = self.transport.get(TRANSACTION_PATH.format(id=transaction_id), sandbox=sandbox)
        try:
            details = response.json()
        except ValueError:
            raise GatewayApiError(
                "Gateway returned a body that is not JSON",
                method="GET",
                url=TRANSACTION_PATH.format(id=transaction_id),
                status_code=response.status_code,
                response_text=response.text,
            )
        logger.debug("Fetched transaction %s", transaction_id)
        return details if isinstance(details, dict) else {}
