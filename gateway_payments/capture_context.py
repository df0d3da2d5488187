"""
Capture-context issuance.

A capture context is a signed token that lets the checkout page load the
gateway's field-level encryption library and tokenize card data directly with
the gateway. Issuance verifies each token and retries a bounded number of
times when verification fails, which absorbs key-rotation races without
accepting an unverifiable context.
"""

import json
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, Optional
from urllib.parse import urlparse

import jwt

from .exceptions import ClaimMissing, MalformedToken, SignatureInvalid, ValidationError, VerificationExhausted
from .models import CaptureContext
from .signing import SigningKeyVerifier
from .transport import GatewayTransport
from .utils import RetryPolicy

logger = logging.getLogger(__name__)

CAPTURE_CONTEXT_PATH = "/microform/v2/sessions"
CLIENT_VERSION = "v2.0"


def is_retryable_verification_error(error: Exception) -> bool:
    """Only signature and structure failures are retried; key lookups and transport errors are not."""
    return isinstance(error, (SignatureInvalid, MalformedToken))


def _claim_object(claims: dict[str, Any], name: str) -> dict[str, Any]:
    value = claims.get(name)
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ClaimMissing(f"The {name} claim is not valid JSON", claim=name)
    # ctx is published as a one-element array
    if isinstance(value, list):
        value = value[0] if value else None
    if not isinstance(value, dict):
        raise ClaimMissing(f"The {name} claim is missing in the capture context", claim=name)
    return value


def decode_capture_context(signed_token: str) -> CaptureContext:
    """
    Extract the client library and encryption key id from a capture context.

    The signature is not checked here; callers verify first.

    Raises:
        MalformedToken: If the token payload cannot be decoded
        ClaimMissing: If ``ctx`` or ``flx`` (or the values inside them) are absent
    """
    try:
        claims = jwt.decode(signed_token, options={"verify_signature": False})
    except jwt.exceptions.DecodeError as e:
        raise MalformedToken(f"Capture context could not be decoded: {e}")

    ctx = _claim_object(claims, "ctx")
    flx = _claim_object(claims, "flx")

    data = ctx.get("data") or {}
    client_library = data.get("clientLibrary")
    client_library_integrity = data.get("clientLibraryIntegrity")
    key_id = (flx.get("jwk") or {}).get("kid")

    if not client_library or not client_library_integrity:
        raise ClaimMissing("The ctx claim does not name a client library", claim="ctx")
    if not key_id:
        raise ClaimMissing("The flx claim does not carry an encryption key id", claim="flx")

    return CaptureContext(
        signed_token=signed_token,
        key_id=key_id,
        client_library_url=client_library,
        client_library_integrity=client_library_integrity,
    )


def encode_capture_context_claims(
    client_library_url: str,
    client_library_integrity: str,
    key_id: str,
    target_origins: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    """Build the ``ctx``/``flx`` claims in the shape the gateway issues them."""
    return {
        "ctx": [
            {
                "data": {
                    "clientLibrary": client_library_url,
                    "clientLibraryIntegrity": client_library_integrity,
                    "targetOrigins": list(target_origins or []),
                },
                "type": "mf-2.0.0",
            }
        ],
        "flx": {
            "jwk": {"kty": "RSA", "use": "enc", "kid": key_id},
        },
    }


class CaptureContextIssuer:
    """Requests and verifies capture contexts."""

    def __init__(
        self,
        transport: GatewayTransport,
        verifier: SigningKeyVerifier,
        verify_signature: bool = True,
        retry_count: int = 3,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.verifier = verifier
        self.verify_signature = verify_signature
        self.retry_policy = RetryPolicy(
            retry_on=is_retryable_verification_error,
            max_attempts=retry_count,
            backoff=retry_backoff,
            sleep=sleep,
            on_exhausted=self._exhausted,
            logger=logger,
            retry_message="Capture context failed verification, requesting a new one",
        )

    @staticmethod
    def _exhausted(attempts: int, error: Exception) -> VerificationExhausted:
        return VerificationExhausted(
            f"Capture context verification failed after {attempts} attempts",
            key_id=getattr(error, "key_id", None),
            attempts=attempts,
            last_error=str(error),
        )

    @staticmethod
    def _validate_request(store_url: str, card_types: Sequence[str]) -> None:
        if not store_url or not isinstance(store_url, str):
            raise ValidationError("Store URL is required", field="store_url", value=store_url)
        parsed = urlparse(store_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Store URL must be an absolute HTTP or HTTPS URL", field="store_url", value=store_url)
        if not card_types:
            raise ValidationError("At least one card type is required", field="card_types", value=card_types)

    def request_context(self, store_url: str, card_types: Sequence[str], sandbox: bool) -> str:
        """Ask the gateway for a new capture context and return the raw token."""
        response = self.transport.post(
            CAPTURE_CONTEXT_PATH,
            sandbox=sandbox,
            json_body={
                "clientVersion": CLIENT_VERSION,
                "targetOrigins": [store_url],
                "allowedCardNetworks": list(card_types),
            },
            accept="application/jwt",
        )
        token = response.text.strip()
        if token.startswith('"'):
            token = json.loads(token)
        return token

    def _attempt(self, store_url: str, card_types: Sequence[str], sandbox: bool) -> str:
        token = self.request_context(store_url, card_types, sandbox)
        if self.verify_signature:
            self.verifier.verify(token, sandbox)
        return token

    def issue(self, store_url: str, card_types: Sequence[str], sandbox: bool) -> CaptureContext:
        """
        Issue a verified capture context for one checkout.

        Args:
            store_url: Origin of the checkout page
            card_types: Accepted card brands
            sandbox: Selects the gateway environment

        Returns:
            CaptureContext with the raw token and its decoded claims

        Raises:
            VerificationExhausted: If every attempt failed signature/structure verification
            KeyNotFound: If the signing key is unknown (not retried)
            ClaimMissing: If the verified token lacks ``ctx`` or ``flx``
            TransportError: If the gateway cannot be reached (not retried)
        """
        self._validate_request(store_url, card_types)
        token = self.retry_policy.call(self._attempt, store_url, card_types, sandbox)
        context = decode_capture_context(token)
        logger.info("Issued capture context for %s (sandbox=%s, key %s)", store_url, sandbox, context.key_id)
        return context
