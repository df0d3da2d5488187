"""
Webhook subscription management.

Keeps the gateway's fraud-review notification subscriptions in line with the
configured name and event types, and decodes incoming notifications.
"""

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any, Optional, Union

from .config import WEBHOOK_EVENT_TYPES, WEBHOOK_PRODUCT_ID, GatewaySettings
from .exceptions import ConfigurationError, GatewayApiError, ValidationError
from .models import WebhookNotification, WebhookProduct, WebhookSubscription
from .transport import GatewayTransport
from .utils import deep_get

logger = logging.getLogger(__name__)

WEBHOOKS_PATH = "/notification-subscriptions/v1/webhooks"
WEBHOOK_PATH = "/notification-subscriptions/v1/webhooks/{id}"
CALLBACK_PATH = "/api/payments/cybersource/changed"
HEALTH_CHECK_PATH = "/api/payments/cybersource/health-check"
PRODUCTS_PATH = "/notification-subscriptions/v1/products/{organization_id}"

# Some accounts answer subscription creation with a notification scope the
# gateway's own schema does not accept, although the subscription exists.
NOTIFICATION_SCOPE_ERROR = "Notificationsubscriptionsv1webhooksNotificationScope"
NOTIFICATION_SCOPE_FIELD = "notificationScope"

WEBHOOK_DESCRIPTION = "Notifies the merchant platform when a transaction flagged for manual fraud review is accepted or rejected."


class WebhookSubscriptionManager:
    """Lists, registers and removes named webhook subscriptions."""

    def __init__(self, transport: GatewayTransport, settings: GatewaySettings, sandbox: Optional[bool] = None):
        self.transport = transport
        self.settings = settings
        self.sandbox = settings.sandbox if sandbox is None else sandbox

    @property
    def organization_id(self) -> str:
        return self.settings.credentials_for(self.sandbox).merchant_id

    def webhook_domain(self) -> str:
        domain = (self.settings.webhook_domain or "").rstrip("/")
        if not domain:
            raise ConfigurationError(
                "Webhook domain is required to register webhooks. Set GatewayPayments_WebhookDomain.",
                config_key="GatewayPayments_WebhookDomain",
            )
        return domain

    def list_subscriptions(self, event_types: Sequence[str] = WEBHOOK_EVENT_TYPES) -> list[WebhookSubscription]:
        """
        List subscriptions for the given event types.

        The listing endpoint is scoped to one event type, so each type is queried
        separately and results are de-duplicated by subscription id. A 404 for
        an event type means it has no subscriptions.
        """
        seen: dict[str, WebhookSubscription] = {}
        for event_type in event_types:
            try:
                response = self.transport.get(
                    WEBHOOKS_PATH,
                    sandbox=self.sandbox,
                    params={
                        "organizationId": self.organization_id,
                        "productId": WEBHOOK_PRODUCT_ID,
                        "eventType": event_type,
                    },
                )
            except GatewayApiError as e:
                if e.is_not_found:
                    logger.debug("No webhook subscriptions for %s", event_type)
                    continue
                raise
            for item in _as_list(response.json()):
                subscription = WebhookSubscription.from_response(item)
                if subscription.id and subscription.id not in seen:
                    seen[subscription.id] = subscription
        return list(seen.values())

    def list_products(self) -> list[WebhookProduct]:
        """Products (and their event types) this organization can subscribe webhooks to."""
        response = self.transport.get(PRODUCTS_PATH.format(organization_id=self.organization_id), sandbox=self.sandbox)
        products = [WebhookProduct.from_response(item) for item in _as_list(response.json())]
        logger.debug("Organization %s can subscribe to %d product(s)", self.organization_id, len(products))
        return products

    def unregister(self, name: Optional[str] = None, event_types: Sequence[str] = WEBHOOK_EVENT_TYPES) -> int:
        """Delete every subscription called ``name``. Returns how many were deleted."""
        name = name or self.settings.webhook_name
        deleted = 0
        for subscription in self.list_subscriptions(event_types):
            if subscription.name != name:
                continue
            try:
                self.transport.delete(WEBHOOK_PATH.format(id=subscription.id), sandbox=self.sandbox)
                deleted += 1
            except GatewayApiError as e:
                if not e.is_not_found:
                    raise
                logger.info("Webhook subscription %s was already removed", subscription.id)
        logger.info("Removed %d webhook subscription(s) named %r", deleted, name)
        return deleted

    def build_subscription_request(self, name: str, event_types: Sequence[str]) -> dict[str, Any]:
        domain = self.webhook_domain()
        return {
            "name": name,
            "description": WEBHOOK_DESCRIPTION,
            "organizationId": self.organization_id,
            "productId": WEBHOOK_PRODUCT_ID,
            "eventTypes": list(event_types),
            "webhookUrl": f"{domain}{CALLBACK_PATH}",
            "healthCheckUrl": f"{domain}{HEALTH_CHECK_PATH}",
            "retryPolicy": {
                "algorithm": "ARITHMETIC",
                "firstRetry": 1,
                "interval": 1,
                "numberOfRetries": 3,
                "deactivateFlag": "false",
                "repeatSequenceCount": 0,
                "repeatSequenceWaitTime": 0,
            },
            "securityPolicy": {"securityType": "KEY", "proxyType": "external"},
        }

    def create(self, name: str, event_types: Sequence[str]) -> Optional[WebhookSubscription]:
        body = self.build_subscription_request(name, event_types)
        try:
            response = self.transport.post(WEBHOOKS_PATH, sandbox=self.sandbox, json_body=body)
        except GatewayApiError as e:
            if is_notification_scope_error(e):
                logger.warning("Gateway reported a notification scope error while creating webhook %r; ignoring", name)
                return None
            raise
        subscription = WebhookSubscription.from_response(response.json() if response.text else {})
        logger.info("Created webhook subscription %s (%r)", subscription.id or "<unknown>", name)
        return subscription

    def reconcile(self, name: str, event_types: Sequence[str]) -> Optional[WebhookSubscription]:
        """
        Replace any subscription called ``name`` with a fresh one.

        Existing subscriptions are deleted rather than kept, so changed URLs
        or retry settings always take effect.

        Returns:
            The created subscription, or None when creation hit the notification
            scope error the gateway reports on some accounts
        """
        self.webhook_domain()
        existing = [s for s in self.list_subscriptions(event_types) if s.name == name]
        if existing:
            logger.info("Replacing %d existing webhook subscription(s) named %r", len(existing), name)
            self.unregister(name, event_types)
        return self.create(name, event_types)

    def register(self) -> Optional[WebhookSubscription]:
        """Reconcile the configured subscription for the review decision events."""
        return self.reconcile(self.settings.webhook_name, WEBHOOK_EVENT_TYPES)


def is_notification_scope_error(error: GatewayApiError) -> bool:
    """True for the schema error naming the notification scope type, or a 4xx that names the notificationScope field."""
    if NOTIFICATION_SCOPE_ERROR in f"{error.message} {error.response_text or ''}":
        return True
    if error.status_code is None or not 400 <= error.status_code < 500:
        return False
    payload = error.response_json() or {}
    for detail in payload.get("details") or []:
        if isinstance(detail, dict) and str(detail.get("field") or "").split(".")[-1] == NOTIFICATION_SCOPE_FIELD:
            return True
    return NOTIFICATION_SCOPE_FIELD in str(payload.get("message") or "")


def _as_list(data: Any) -> Iterable[dict[str, Any]]:
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        return [data]
    return []


def parse_webhook_notification(body: Union[str, bytes, dict[str, Any]]) -> WebhookNotification:
    """
    Decode a webhook delivery body.

    The payment id is the transaction id of the first payload entry.

    Raises:
        ValidationError: If the body is not a JSON object or has no event type
    """
    if isinstance(body, (str, bytes)):
        try:
            data = json.loads(body)
        except ValueError:
            raise ValidationError("Webhook body is not valid JSON", field="body")
    else:
        data = body
    if not isinstance(data, dict):
        raise ValidationError("Webhook body must be a JSON object", field="body")

    event_type = data.get("eventType")
    if not event_type:
        raise ValidationError("Webhook body has no eventType", field="eventType")

    payload = data.get("payload")
    first = payload[0] if isinstance(payload, list) and payload else payload
    first = first if isinstance(first, dict) else {}

    return WebhookNotification(
        event_type=event_type,
        payment_id=deep_get(first, "data.id"),
        webhook_id=data.get("webhookId"),
        notification_id=data.get("notificationId"),
        organization_id=first.get("organizationId"),
        raw=data,
    )
