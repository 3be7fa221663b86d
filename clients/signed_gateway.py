"""
HMAC-signed JSON POST shared by the email and SMS gateways.

Both gateways authenticate requests with an X-API-Key header plus an
HMAC-SHA256 signature of the exact JSON body in X-Signature.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10


class GatewayError(Exception):
    """Raised when a signed gateway request fails."""


class SignedGateway:
    """Credentials and transport for one HMAC-signed gateway endpoint."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str):
        """
        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret

    def sign(self, payload_json: str) -> str:
        """Hex HMAC-SHA256 of the serialized payload."""
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            GatewayError: On connection failure, invalid JSON, or a
                response without success=true.
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self.sign(payload_json),
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Gateway connection failed: {e}")
            raise GatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Gateway returned invalid JSON: {response.text}")
            raise GatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Gateway error: {error_msg}")
            raise GatewayError(f"Gateway error: {error_msg}")
