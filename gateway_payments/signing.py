"""
Signing-key verification for gateway-issued tokens.

Capture contexts are RS256 tokens signed with a rotating key. The key id in
the token header selects the public key, which is fetched from the gateway on
every verification because keys rotate and a stale copy produces false
failures.
"""

import json
import logging
from typing import Any

import jwt
from jwt.algorithms import RSAAlgorithm

from .exceptions import GatewayApiError, KeyNotFound, MalformedToken, SignatureInvalid, ValidationError
from .models import SigningKey
from .transport import GatewayTransport
from .utils import b64url_decode

logger = logging.getLogger(__name__)

PUBLIC_KEY_PATH = "/flex/v2/public-keys/{kid}"

# Only asymmetric RSA algorithms can be checked against a published JWK
ALLOWED_ALGORITHMS = ["RS256", "RS384", "RS512", "PS256", "PS384", "PS512"]

# Lifetime, audience and issuer are not checked; the context is short-lived by issuance
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}


def read_token_header(signed_token: str) -> dict[str, Any]:
    """
    Decode a token's protected header without trusting its signature.

    Raises:
        MalformedToken: If the token is not three dot-separated segments or the
            header is not base64url-encoded JSON
    """
    if not isinstance(signed_token, str):
        raise MalformedToken("Token must be a string")
    segments = signed_token.split(".")
    if len(segments) != 3:
        raise MalformedToken(f"Invalid token format: expected 3 segments, got {len(segments)}")
    try:
        header = json.loads(b64url_decode(segments[0]).decode("utf-8"))
    except ValueError as e:
        raise MalformedToken(f"Token header could not be decoded: {e}")
    if not isinstance(header, dict):
        raise MalformedToken("Token header is not a JSON object")
    return header


def read_key_id(signed_token: str) -> str:
    """Return the ``kid`` header of a token, raising MalformedToken when absent."""
    kid = read_token_header(signed_token).get("kid")
    if not kid or not isinstance(kid, str):
        raise MalformedToken("Missing 'kid' in token header")
    return kid


class SigningKeyVerifier:
    """Verifies gateway-signed tokens against the gateway's published public keys."""

    def __init__(self, transport: GatewayTransport):
        self.transport = transport

    def fetch_key(self, key_id: str, sandbox: bool) -> SigningKey:
        """
        Fetch the public key for ``key_id`` from the sandbox or production key space.

        Raises:
            KeyNotFound: If the gateway has no key with this id
            TransportError: If the gateway cannot be reached
        """
        try:
            response = self.transport.get(
                PUBLIC_KEY_PATH.format(kid=key_id),
                sandbox=sandbox,
                signed=False,
                accept="application/json",
            )
        except GatewayApiError as e:
            if e.is_not_found:
                raise KeyNotFound(f"Public key {key_id} not found", key_id=key_id)
            raise

        try:
            return SigningKey.from_jwk(response.json())
        except (ValueError, ValidationError):
            raise KeyNotFound(f"Public key response for {key_id} did not contain an RSA key", key_id=key_id)

    def verify(self, signed_token: str, sandbox: bool) -> None:
        """
        Verify a token's signature with the key named in its header.

        Args:
            signed_token: Compact-serialized signed token
            sandbox: Selects the sandbox or production key space

        Raises:
            MalformedToken: If the token structure or header is invalid, or the
                header has no key id. Raised before any network fetch.
            KeyNotFound: If the key id is unknown to the gateway
            SignatureInvalid: If the signature does not match
        """
        key_id = read_key_id(signed_token)
        signing_key = self.fetch_key(key_id, sandbox)

        try:
            public_key = RSAAlgorithm.from_jwk(json.dumps(signing_key.to_jwk()))
        except (jwt.exceptions.InvalidKeyError, ValueError) as e:
            raise SignatureInvalid(f"Published key {key_id} is not a usable RSA key: {e}", key_id=key_id)

        try:
            jwt.decode(signed_token, key=public_key, algorithms=ALLOWED_ALGORITHMS, options=_DECODE_OPTIONS)
        except jwt.exceptions.InvalidSignatureError:
            raise SignatureInvalid("Token signature verification failed", key_id=key_id)
        except jwt.exceptions.DecodeError as e:
            raise MalformedToken(f"Token could not be decoded: {e}", key_id=key_id)
        except jwt.exceptions.PyJWTError as e:
            raise SignatureInvalid(f"Token rejected: {e}", key_id=key_id)

        logger.debug("Token signature verified with key %s", key_id)
