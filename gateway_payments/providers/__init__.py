"""
Gateway providers for the Gateway Payments SDK.
"""

import logging
from typing import Dict, Type

from .base import PaymentProvider, ProviderCapabilities
from .cybersource import CyberSourceProvider

logger = logging.getLogger(__name__)

# Provider registry
PROVIDERS: Dict[str, Type[PaymentProvider]] = {
    "cybersource": CyberSourceProvider,
}

__all__ = ["PaymentProvider", "ProviderCapabilities", "CyberSourceProvider", "PROVIDERS", "create_payment_provider"]


def create_payment_provider(provider_type: str = "cybersource", **kwargs) -> PaymentProvider:
    """
    Factory function to create gateway providers.

    Args:
        provider_type: Type of gateway provider (cybersource)
        **kwargs: Additional arguments for the provider (settings, customers, transport, ...)

    Returns:
        PaymentProvider: The created gateway provider

    Raises:
        ValueError: If provider type is not supported
        ConfigurationError: If the provider configuration is invalid
    """
    provider_class = PROVIDERS.get(provider_type.lower())
    if provider_class is None:
        logger.error("Unsupported provider type: %s", provider_type)
        raise ValueError(f"Unsupported provider type: {provider_type}")

    logger.info("Creating %s", provider_class.__name__)
    return provider_class(**kwargs)
