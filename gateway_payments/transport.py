"""
HTTP transport for the gateway REST API.

Signs every request with the merchant's HTTP signature credentials for the
selected environment and turns network and HTTP failures into SDK errors.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from email.utils import formatdate
from typing import Any, Optional
from urllib.parse import urlencode

import requests

from .config import GatewayCredentials, GatewaySettings
from .exceptions import ConfigurationError, GatewayApiError, TransportError
from .utils import redact_message

logger = logging.getLogger(__name__)

USER_AGENT = "gateway-payments/0.1"


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    text: str
    content_type: str = ""

    def json(self) -> Any:
        return json.loads(self.text) if self.text else {}


def sign_request(
    credentials: GatewayCredentials,
    host: str,
    method: str,
    path: str,
    body: Optional[bytes],
    date: Optional[str] = None,
) -> dict[str, str]:
    """
    Build HTTP signature authentication headers for one request.

    The signed header list is ``host date request-target digest v-c-merchant-id``
    for requests with a body and ``host date request-target v-c-merchant-id``
    otherwise.
    """
    date = date or formatdate(usegmt=True)
    headers = {
        "v-c-merchant-id": credentials.merchant_id,
        "Date": date,
        "Host": host,
    }
    lines = [
        f"host: {host}",
        f"date: {date}",
        f"request-target: {method.lower()} {path}",
    ]
    signed_headers = "host date request-target"
    if body is not None:
        digest = "SHA-256=" + base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")
        headers["Digest"] = digest
        lines.append(f"digest: {digest}")
        signed_headers += " digest"
    lines.append(f"v-c-merchant-id: {credentials.merchant_id}")
    signed_headers += " v-c-merchant-id"

    try:
        secret = base64.b64decode(credentials.merchant_secret_key, validate=True)
    except binascii.Error:
        raise ConfigurationError("Merchant secret key must be base64 encoded.", config_key="merchant_secret_key")
    signature = base64.b64encode(hmac.new(secret, "\n".join(lines).encode("utf-8"), hashlib.sha256).digest()).decode("ascii")
    headers["Signature"] = (
        f'keyid="{credentials.merchant_key_id}", algorithm="HmacSHA256", '
        f'headers="{signed_headers}", signature="{signature}"'
    )
    return headers


class GatewayTransport:
    """
    Signed JSON transport over ``requests``.

    A new session is opened per request and closed on every exit path, so the
    transport holds no connection state between calls.
    """

    def __init__(
        self,
        settings: GatewaySettings,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.settings = settings
        self._session_factory = session_factory

    def request(
        self,
        method: str,
        path: str,
        *,
        sandbox: bool,
        json_body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        signed: bool = True,
        accept: str = "application/hal+json;charset=utf-8",
    ) -> GatewayResponse:
        """
        Send one request to the environment selected by ``sandbox``.

        Raises:
            TransportError: If the gateway cannot be reached
            GatewayApiError: If the gateway answers with a non-2xx status
        """
        method = method.upper()
        host = self.settings.host_for(sandbox)
        request_target = path
        if params:
            request_target = f"{path}?{urlencode(params)}"
        url = f"https://{host}{request_target}"
        body = json.dumps(json_body).encode("utf-8") if json_body is not None else None

        headers = {
            "Accept": accept,
            "User-Agent": USER_AGENT,
        }
        if body is not None:
            headers["Content-Type"] = "application/json;charset=utf-8"
        if signed:
            credentials = self.settings.credentials_for(sandbox)
            credentials.validate("sandbox" if sandbox else "production")
            headers.update(sign_request(credentials, host, method, request_target, body))

        logger.debug("Gateway request %s %s", method, url)
        try:
            with self._session_factory() as session:
                resp = session.request(method, url, data=body, headers=headers, timeout=self.settings.timeout)
                response = GatewayResponse(
                    status_code=resp.status_code,
                    text=resp.text or "",
                    content_type=resp.headers.get("Content-Type", "") if resp.headers else "",
                )
        except requests.exceptions.Timeout:
            logger.error("Gateway request timed out: %s %s", method, url)
            raise TransportError("Gateway request timed out", method=method, url=url)
        except requests.exceptions.RequestException as e:
            logger.error("Gateway request failed: %s %s: %s", method, url, redact_message(str(e)))
            raise TransportError(f"Gateway request failed: {redact_message(str(e))}", method=method, url=url)

        if not 200 <= response.status_code < 300:
            logger.warning("Gateway returned HTTP %s for %s %s", response.status_code, method, url)
            raise GatewayApiError(
                f"Gateway returned HTTP {response.status_code}",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response.text,
            )

        logger.debug("Gateway response %s for %s %s", response.status_code, method, url)
        return response

    def get(self, path: str, *, sandbox: bool, **kwargs) -> GatewayResponse:
        return self.request("GET", path, sandbox=sandbox, **kwargs)

    def post(self, path: str, *, sandbox: bool, json_body: Optional[dict[str, Any]] = None, **kwargs) -> GatewayResponse:
        return self.request("POST", path, sandbox=sandbox, json_body=json_body if json_body is not None else {}, **kwargs)

    def delete(self, path: str, *, sandbox: bool, **kwargs) -> GatewayResponse:
        return self.request("DELETE", path, sandbox=sandbox, **kwargs)
