import pytest

from gateway_payments.config import (
    DEFAULT_CARD_TYPES,
    PRODUCTION_HOST,
    SANDBOX_HOST,
    GatewayCredentials,
    GatewaySettings,
    parse_card_types,
)
from gateway_payments.exceptions import ConfigurationError

ENV_VARS = [
    "CYBERSOURCE_MERCHANT_ID",
    "CYBERSOURCE_MERCHANT_KEY_ID",
    "CYBERSOURCE_MERCHANT_SECRET_KEY",
    "CYBERSOURCE_SANDBOX_MERCHANT_ID",
    "CYBERSOURCE_SANDBOX_MERCHANT_KEY_ID",
    "CYBERSOURCE_SANDBOX_MERCHANT_SECRET_KEY",
    "GatewayPayments_Sandbox",
    "GatewayPayments_SingleMessageMode",
    "GatewayPayments_CardTypes",
    "GatewayPayments_VerifySignature",
    "GatewayPayments_SignatureRetryCount",
    "GatewayPayments_SignatureRetryBackoff",
    "GatewayPayments_Timeout",
    "GatewayPayments_WebhookDomain",
    "GatewayPayments_WebhookName",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_parse_card_types_normalizes():
    assert parse_card_types(" visa, Mastercard ,,amex ") == ["VISA", "MASTERCARD", "AMEX"]
    assert parse_card_types("") == []


def test_parse_card_types_rejects_control_characters():
    with pytest.raises(ValueError):
        parse_card_types("VISA\nAMEX")


def test_default_card_types():
    assert parse_card_types(DEFAULT_CARD_TYPES) == [
        "VISA",
        "MASTERCARD",
        "AMEX",
        "DISCOVER",
        "DINERSCLUB",
        "JCB",
        "CARTESBANCAIRES",
        "MAESTRO",
        "CUP",
    ]


def test_from_env_defaults(clean_env):
    settings = GatewaySettings.from_env()
    assert settings.sandbox is True
    assert settings.single_message_mode is False
    assert settings.verify_signature is True
    assert settings.signature_retry_count == 3
    assert settings.signature_retry_backoff == 0.5
    assert settings.timeout == 30.0
    assert settings.webhook_domain is None
    assert settings.webhook_name == "Gateway Payments Webhook"
    assert "VISA" in settings.card_types


def test_from_env_sandbox_credentials_fall_back_to_shared(clean_env):
    clean_env.setenv("CYBERSOURCE_MERCHANT_ID", "live")
    clean_env.setenv("CYBERSOURCE_MERCHANT_KEY_ID", "live-key")
    clean_env.setenv("CYBERSOURCE_MERCHANT_SECRET_KEY", "bGl2ZQ==")
    clean_env.setenv("CYBERSOURCE_SANDBOX_MERCHANT_ID", "test")
    settings = GatewaySettings.from_env()
    assert settings.credentials_for(False).merchant_id == "live"
    assert settings.credentials_for(True).merchant_id == "test"
    assert settings.credentials_for(True).merchant_key_id == "live-key"


def test_from_env_overrides(clean_env):
    clean_env.setenv("GatewayPayments_Sandbox", "false")
    clean_env.setenv("GatewayPayments_SingleMessageMode", "yes")
    clean_env.setenv("GatewayPayments_CardTypes", "visa,amex")
    clean_env.setenv("GatewayPayments_SignatureRetryCount", "5")
    clean_env.setenv("GatewayPayments_SignatureRetryBackoff", "0")
    clean_env.setenv("GatewayPayments_WebhookDomain", "https://shop.example.com")
    settings = GatewaySettings.from_env()
    assert settings.sandbox is False
    assert settings.single_message_mode is True
    assert settings.card_types == ["VISA", "AMEX"]
    assert settings.signature_retry_count == 5
    assert settings.signature_retry_backoff == 0
    assert settings.webhook_domain == "https://shop.example.com"


def test_from_env_invalid_boolean(clean_env):
    clean_env.setenv("GatewayPayments_VerifySignature", "maybe")
    with pytest.raises(ConfigurationError):
        GatewaySettings.from_env()


def test_from_env_invalid_number(clean_env):
    clean_env.setenv("GatewayPayments_SignatureRetryCount", "three")
    with pytest.raises(ConfigurationError):
        GatewaySettings.from_env()


def test_retry_count_must_be_positive(credentials):
    with pytest.raises(ConfigurationError):
        GatewaySettings(credentials, credentials, signature_retry_count=0)


def test_timeout_must_be_positive(credentials):
    with pytest.raises(ConfigurationError):
        GatewaySettings(credentials, credentials, timeout=0)


def test_host_for():
    assert GatewaySettings.host_for(True) == SANDBOX_HOST == "apitest.cybersource.com"
    assert GatewaySettings.host_for(False) == PRODUCTION_HOST == "api.cybersource.com"


def test_credentials_validate_and_repr():
    creds = GatewayCredentials("merchant", "key", "")
    with pytest.raises(ConfigurationError):
        creds.validate("sandbox")
    full = GatewayCredentials("merchant", "key", "c2VjcmV0")
    full.validate("sandbox")
    assert "c2VjcmV0" not in repr(full)


def test_summary_has_no_secrets(settings):
    summary = settings.summary()
    assert summary["sandbox_merchant_id"] == "test_merchant"
    assert "c2VjcmV0" not in str(summary)
