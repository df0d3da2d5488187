"""
Abstract base class for card gateway providers.

Defines the interface that all gateway providers must implement.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from ..models import CaptureContext, LifecycleOutcome, Order, PaymentRecord, WebhookProduct, WebhookSubscription

logger = logging.getLogger(__name__)


@dataclass
class ProviderCapabilities:
    """Represents the capabilities of a gateway provider."""

    supports_capture_context: bool = True
    supports_partial_capture: bool = True
    supports_refunds: bool = True
    supports_partial_refunds: bool = True
    supports_voids: bool = True
    supports_webhooks: bool = True
    single_message_mode: bool = False
    card_types: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert capabilities to dictionary."""
        return {
            "supports_capture_context": self.supports_capture_context,
            "supports_partial_capture": self.supports_partial_capture,
            "supports_refunds": self.supports_refunds,
            "supports_partial_refunds": self.supports_partial_refunds,
            "supports_voids": self.supports_voids,
            "supports_webhooks": self.supports_webhooks,
            "single_message_mode": self.single_message_mode,
            "card_types": list(self.card_types),
        }


class PaymentProvider(ABC):
    """
    Abstract base class for card gateway providers.

    Providers own no persisted state: every operation mutates only the
    caller's payment record and order.
    """

    def __init__(self, name: str):
        """Initialize the gateway provider."""
        self.name = name
        self._validate_configuration()
        self.capabilities = self._get_capabilities()
        logger.info("Initialized payment provider: %s", self.name)

    @abstractmethod
    def _get_capabilities(self) -> ProviderCapabilities:
        """Get the capabilities of this provider."""
        pass

    @abstractmethod
    def _validate_configuration(self) -> None:
        """Validate the provider configuration."""
        pass

    @abstractmethod
    def issue_capture_context(
        self,
        store_url: str,
        card_types: Optional[Union[str, Sequence[str]]] = None,
        sandbox: Optional[bool] = None,
    ) -> CaptureContext:
        """
        Issue a verified tokenization context for one checkout page.

        Args:
            store_url: Origin of the checkout page
            card_types: Accepted card brands (default: configured card types)
            sandbox: Gateway environment (default: configured environment)

        Returns:
            CaptureContext for the checkout page

        Raises:
            TokenVerificationError: If no verifiable context could be obtained
            TransportError: If the gateway cannot be reached
        """
        pass

    @abstractmethod
    def authorize(
        self,
        token: str,
        payment: PaymentRecord,
        order: Order,
        sandbox: Optional[bool] = None,
        single_message_mode: Optional[bool] = None,
    ) -> LifecycleOutcome:
        """
        Authorize a tokenized card for a payment.

        Args:
            token: Transient token from the checkout page
            payment: Payment to authorize, updated in place
            order: Order the payment belongs to
            sandbox: Gateway environment (default: configured environment)
            single_message_mode: Authorize and capture in one call (default: configured mode)

        Returns:
            LifecycleOutcome describing the mapped result

        Raises:
            CustomerNotFound: If the order's customer cannot be resolved
            TransportError: If the gateway cannot be reached
        """
        pass

    @abstractmethod
    def capture(
        self,
        payment: PaymentRecord,
        order: Order,
        amount: Optional[Union[Decimal, float, str]] = None,
        sequence_number: Optional[int] = None,
        is_final: bool = True,
        notes: Optional[str] = None,
    ) -> LifecycleOutcome:
        """Capture funds against the payment's authorization."""
        pass

    @abstractmethod
    def refund(self, payment: PaymentRecord, amount: Optional[Union[Decimal, float, str]] = None) -> LifecycleOutcome:
        """Refund a captured payment."""
        pass

    @abstractmethod
    def void(self, payment: PaymentRecord) -> LifecycleOutcome:
        """Void an uncaptured authorization."""
        pass

    @abstractmethod
    def refresh_status(self, payment: PaymentRecord, outer_id: Optional[str] = None, order: Optional[Order] = None) -> LifecycleOutcome:
        """Re-query the gateway to resolve a payment held for review."""
        pass

    @abstractmethod
    def apply_review_decision(self, payment: PaymentRecord, event_type: str, order: Optional[Order] = None) -> LifecycleOutcome:
        """Apply an out-of-band fraud-review decision to a payment held for review."""
        pass

    @abstractmethod
    def register_webhooks(self) -> Optional[WebhookSubscription]:
        pass

    @abstractmethod
    def unregister_webhooks(self) -> int:
        pass

    @abstractmethod
    def list_webhooks(self) -> List[WebhookSubscription]:
        pass

    @abstractmethod
    def list_webhook_products(self) -> List[WebhookProduct]:
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str, sandbox: Optional[bool] = None) -> Dict[str, Any]:
        """Look up the gateway's details for one transaction."""
        pass

    def get_capabilities(self) -> ProviderCapabilities:
        """Get the capabilities of this provider."""
        return self.capabilities

    def supports_card_type(self, card_type: str) -> bool:
        return card_type.strip().upper() in self.capabilities.card_types

    def get_provider_info(self) -> Dict[str, Any]:
        """Get provider information."""
        return {
            "name": self.name,
            "capabilities": self.capabilities.to_dict(),
        }
