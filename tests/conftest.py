"""
conftest.py: Shared pytest fixtures for the gateway_payments test suite.

- Gateway HTTP is replaced by FakeTransport, which records every call and
  replays scripted responses per (method, path).
- RSA keys are generated once per session with cryptography; tokens are
  signed with PyJWT.

Usage:
    def test_something(transport, settings):
        transport.add("POST", "/pts/v2/payments", {"status": "AUTHORIZED", "id": "tx-1"})
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from gateway_payments.config import GatewayCredentials, GatewaySettings
from gateway_payments.exceptions import GatewayApiError
from gateway_payments.models import Address, Contact, LineItem, Order, PaymentRecord
from gateway_payments.operations import InMemoryCustomerDirectory
from gateway_payments.transport import GatewayResponse

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class Call:
    method: str
    path: str
    sandbox: bool
    json_body: Optional[dict]
    params: Optional[dict]
    signed: bool
    accept: str


def api_error(status_code: int, body: Any = None) -> GatewayApiError:
    text = body if isinstance(body, str) or body is None else json.dumps(body)
    return GatewayApiError(
        f"Gateway returned HTTP {status_code}",
        method="TEST",
        url="https://apitest.cybersource.com",
        status_code=status_code,
        response_text=text,
    )


class FakeTransport:
    """
    Stand-in for GatewayTransport.

    Responses queued for a route are consumed in order; the last one repeats.
    A response may be a JSON-able value, a str body, a GatewayResponse, an
    exception to raise, or a callable receiving the Call.
    """

    def __init__(self):
        self.calls: list[Call] = []
        self.routes: dict[tuple[str, str], list[Any]] = {}

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.routes.setdefault((method.upper(), path), []).extend(responses)

    def calls_to(self, method: str, path: str) -> list[Call]:
        return [c for c in self.calls if c.method == method.upper() and c.path == path]

    def request(self, method, path, *, sandbox, json_body=None, params=None, signed=True, accept="application/hal+json;charset=utf-8"):
        call = Call(method.upper(), path, sandbox, json_body, params, signed, accept)
        self.calls.append(call)
        queue = self.routes.get((call.method, path))
        if not queue:
            raise AssertionError(f"Unexpected gateway call: {call.method} {path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item) and not isinstance(item, GatewayResponse):
            item = item(call)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, GatewayResponse):
            return item
        if isinstance(item, str):
            return GatewayResponse(status_code=200, text=item)
        return GatewayResponse(status_code=200, text=json.dumps(item), content_type="application/json")

    def get(self, path, *, sandbox, **kwargs):
        return self.request("GET", path, sandbox=sandbox, **kwargs)

    def post(self, path, *, sandbox, json_body=None, **kwargs):
        return self.request("POST", path, sandbox=sandbox, json_body=json_body if json_body is not None else {}, **kwargs)

    def delete(self, path, *, sandbox, **kwargs):
        return self.request("DELETE", path, sandbox=sandbox, **kwargs)


@pytest.fixture
def credentials():
    return GatewayCredentials(merchant_id="test_merchant", merchant_key_id="key-123", merchant_secret_key="c2VjcmV0")


@pytest.fixture
def settings(credentials):
    return GatewaySettings(
        production_credentials=GatewayCredentials("live_merchant", "live-key", "bGl2ZQ=="),
        sandbox_credentials=credentials,
        sandbox=True,
        signature_retry_backoff=0.5,
        webhook_domain="https://shop.example.com",
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps) -> Callable[[float], None]:
    return sleeps.append


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwk(private_key, kid: str) -> dict:
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "use": "enc"})
    return jwk


def make_token(private_key, claims: dict, kid: Optional[str] = "kid-1") -> str:
    headers = {"kid": kid} if kid else None
    return jwt.encode(claims, private_key, algorithm="RS256", headers=headers)


@pytest.fixture
def contact():
    return Contact(
        id="contact-1",
        first_name="Ada",
        last_name="Lovelace",
        middle_name="King",
        emails=["ada@example.com"],
    )


@pytest.fixture
def customers(contact):
    return InMemoryCustomerDirectory({"user-1": contact})


@pytest.fixture
def order():
    return Order(
        id="order-1",
        customer_id="user-1",
        currency="USD",
        total=Decimal("30.50"),
        discount_amount=Decimal("2"),
        tax_total=Decimal("2.5"),
        items=[
            LineItem(
                id="li-1",
                name="Widget",
                sku="W-1",
                price=Decimal("15"),
                placed_price=Decimal("30"),
                discount_amount=Decimal("2"),
                tax_total=Decimal("2.5"),
                quantity=2,
            )
        ],
    )


@pytest.fixture
def payment():
    return PaymentRecord(
        id="pay-1",
        amount=Decimal("30.50"),
        currency="USD",
        billing_address=Address(
            line1="1 Main St",
            city="Springfield",
            region_name="IL",
            postal_code="62701",
            country_name="US",
        ),
    )


@pytest.fixture
def make_api_error():
    return api_error


@pytest.fixture
def token_factory():
    """Signs claims with a private key: token_factory(key, claims, kid="kid-1")."""
    return make_token


@pytest.fixture
def jwk_factory():
    """Public JWK for a private key: jwk_factory(key, kid)."""
    return public_jwk
