"""
Configuration module for the Gateway Payments SDK.

Handles environment-based configuration for gateway credentials, capture
context verification and webhook subscription settings.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SANDBOX_HOST = "apitest.cybersource.com"
PRODUCTION_HOST = "api.cybersource.com"

DEFAULT_CARD_TYPES = "VISA, MASTERCARD, AMEX, DISCOVER, DINERSCLUB, JCB, CARTESBANCAIRES, MAESTRO, CUP"
DEFAULT_SIGNATURE_RETRY_COUNT = 3
DEFAULT_SIGNATURE_RETRY_BACKOFF = 0.5
DEFAULT_TIMEOUT = 30.0
DEFAULT_WEBHOOK_NAME = "Gateway Payments Webhook"

# Decision Manager case-management events drive the out-of-band review path
WEBHOOK_PRODUCT_ID = "decisionManager"
REVIEW_ACCEPT_EVENT = "risk.casemanagement.decision.accept"
REVIEW_REJECT_EVENT = "risk.casemanagement.decision.reject"
WEBHOOK_EVENT_TYPES = (REVIEW_ACCEPT_EVENT, REVIEW_REJECT_EVENT)

# Configuration limits
MAX_CONFIG_STRING_LENGTH = 1000
MAX_CONFIG_VALUES = 20

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _validate_config_string(config_string: str, config_name: str) -> str:
    """Validate configuration string for type, length, and content."""
    if not isinstance(config_string, str):
        raise TypeError(f"{config_name} must be a string, got {type(config_string).__name__}")

    if len(config_string) > MAX_CONFIG_STRING_LENGTH:
        raise ValueError(f"{config_name} string too long ({len(config_string)} chars). Max: {MAX_CONFIG_STRING_LENGTH}")

    if any(char in config_string for char in ["\0", "\r", "\n", "\t"]):
        raise ValueError(f"{config_name} contains invalid characters")

    return config_string


def parse_card_types(config_string: str) -> List[str]:
    """Normalize a comma-separated card brand list (trimmed, upper-cased, empties dropped)."""
    if not config_string:
        return []

    config_string = _validate_config_string(config_string, "card types")
    values = [s.strip().upper() for s in config_string.split(",") if s.strip()]

    if len(values) > MAX_CONFIG_VALUES:
        raise ValueError(f"Too many card types values ({len(values)}). Max: {MAX_CONFIG_VALUES}")

    return values


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"Invalid boolean value for {name}: {raw}",
        config_key=name,
        expected_value="true/false",
        actual_value=raw,
    )


def _get_number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigurationError(
            f"Invalid numeric value for {name}: {raw}",
            config_key=name,
            expected_value=cast.__name__,
            actual_value=raw,
        )


@dataclass(frozen=True)
class GatewayCredentials:
    """Merchant credentials used for HTTP signature authentication."""

    merchant_id: str
    merchant_key_id: str
    merchant_secret_key: str

    def validate(self, environment: str) -> None:
        for name in ("merchant_id", "merchant_key_id", "merchant_secret_key"):
            if not getattr(self, name):
                raise ConfigurationError(
                    f"Gateway {name} is required for the {environment} environment.",
                    config_key=name,
                )

    def __repr__(self) -> str:
        return f"GatewayCredentials(merchant_id={self.merchant_id!r}, merchant_key_id={self.merchant_key_id!r})"


@dataclass(frozen=True)
class GatewaySettings:
    """
    Runtime settings for the gateway integration.

    Sandbox and production carry separate credential sets; a call uses
    exactly one of them, selected by its sandbox flag.
    """

    production_credentials: GatewayCredentials
    sandbox_credentials: GatewayCredentials
    sandbox: bool = True
    single_message_mode: bool = False
    card_types: List[str] = field(default_factory=lambda: parse_card_types(DEFAULT_CARD_TYPES))
    verify_signature: bool = True
    signature_retry_count: int = DEFAULT_SIGNATURE_RETRY_COUNT
    signature_retry_backoff: float = DEFAULT_SIGNATURE_RETRY_BACKOFF
    timeout: float = DEFAULT_TIMEOUT
    webhook_domain: Optional[str] = None
    webhook_name: str = DEFAULT_WEBHOOK_NAME

    def __post_init__(self):
        if self.signature_retry_count < 1:
            raise ConfigurationError(
                "Signature retry count must be at least 1",
                config_key="signature_retry_count",
                expected_value=">= 1",
                actual_value=str(self.signature_retry_count),
            )
        if self.signature_retry_backoff < 0:
            raise ConfigurationError(
                "Signature retry backoff must be non-negative",
                config_key="signature_retry_backoff",
                actual_value=str(self.signature_retry_backoff),
            )
        if self.timeout <= 0:
            raise ConfigurationError("Timeout must be a positive number.", config_key="timeout", actual_value=str(self.timeout))

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        """Build settings from environment variables."""
        production = GatewayCredentials(
            merchant_id=os.getenv("CYBERSOURCE_MERCHANT_ID", ""),
            merchant_key_id=os.getenv("CYBERSOURCE_MERCHANT_KEY_ID", ""),
            merchant_secret_key=os.getenv("CYBERSOURCE_MERCHANT_SECRET_KEY", ""),
        )
        sandbox = GatewayCredentials(
            merchant_id=os.getenv("CYBERSOURCE_SANDBOX_MERCHANT_ID") or production.merchant_id,
            merchant_key_id=os.getenv("CYBERSOURCE_SANDBOX_MERCHANT_KEY_ID") or production.merchant_key_id,
            merchant_secret_key=os.getenv("CYBERSOURCE_SANDBOX_MERCHANT_SECRET_KEY") or production.merchant_secret_key,
        )
        card_types = parse_card_types(os.getenv("GatewayPayments_CardTypes", DEFAULT_CARD_TYPES))
        if not card_types:
            logger.warning("No card types configured. Using default card types.")
            card_types = parse_card_types(DEFAULT_CARD_TYPES)

        return cls(
            production_credentials=production,
            sandbox_credentials=sandbox,
            sandbox=_get_bool("GatewayPayments_Sandbox", True),
            single_message_mode=_get_bool("GatewayPayments_SingleMessageMode", False),
            card_types=card_types,
            verify_signature=_get_bool("GatewayPayments_VerifySignature", True),
            signature_retry_count=_get_number("GatewayPayments_SignatureRetryCount", DEFAULT_SIGNATURE_RETRY_COUNT, int),
            signature_retry_backoff=_get_number("GatewayPayments_SignatureRetryBackoff", DEFAULT_SIGNATURE_RETRY_BACKOFF),
            timeout=_get_number("GatewayPayments_Timeout", DEFAULT_TIMEOUT),
            webhook_domain=os.getenv("GatewayPayments_WebhookDomain") or None,
            webhook_name=os.getenv("GatewayPayments_WebhookName") or DEFAULT_WEBHOOK_NAME,
        )

    def credentials_for(self, sandbox: bool) -> GatewayCredentials:
        return self.sandbox_credentials if sandbox else self.production_credentials

    @staticmethod
    def host_for(sandbox: bool) -> str:
        return SANDBOX_HOST if sandbox else PRODUCTION_HOST

    def summary(self) -> dict:
        """Get a summary of the current configuration without secrets."""
        return {
            "sandbox": self.sandbox,
            "single_message_mode": self.single_message_mode,
            "card_types": list(self.card_types),
            "verify_signature": self.verify_signature,
            "signature_retry_count": self.signature_retry_count,
            "signature_retry_backoff": self.signature_retry_backoff,
            "timeout": self.timeout,
            "webhook_domain": self.webhook_domain,
            "webhook_name": self.webhook_name,
            "production_merchant_id": self.production_credentials.merchant_id,
            "sandbox_merchant_id": self.sandbox_credentials.merchant_id,
        }
