"""
Gateway Payments SDK

Card gateway integration: verified capture contexts, payment lifecycle
mapping and fraud-review webhook subscriptions.
"""

from . import config, exceptions, models, utils
from .capture_context import CaptureContextIssuer, decode_capture_context, encode_capture_context_claims
from .config import GatewayCredentials, GatewaySettings
from .lifecycle import LifecycleStatusMapper
from .models import (
    CaptureContext,
    GatewayOperationResult,
    GatewayStatus,
    LifecycleOutcome,
    OutcomeKind,
    PaymentRecord,
    PaymentStatus,
    WebhookProduct,
    PaymentStatus,
)
from .operations import CustomerDirectory, InMemoryCustomerDirectory, PaymentOperationClient
from .providers import CyberSourceProvider, PaymentProvider, create_payment_provider
from .signing import SigningKeyVerifier
from .webhooks import WebhookSubscriptionManager, parse_webhook_notification

__version__ = "0.1.0"

__all__ = [
    "CyberSourceProvider",
    "PaymentProvider",
    "create_payment_provider",
    "GatewaySettings",
    "GatewayCredentials",
    "CaptureContextIssuer",
    "SigningKeyVerifier",
    "PaymentOperationClient",
    "CustomerDirectory",
    "InMemoryCustomerDirectory",
    "LifecycleStatusMapper",
    "WebhookSubscriptionManager",
    "parse_webhook_notification",
    "decode_capture_context",
    "encode_capture_context_claims",
    "CaptureContext",
    "GatewayOperationResult",
    "GatewayStatus",
    "LifecycleOutcome",
    "OutcomeKind",
    "PaymentRecord",
    "PaymentStatus",
    "WebhookProduct",
    "models",
    "exceptions",
    "utils",
    "config",
]
