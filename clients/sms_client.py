"""SMS gateway client. Same signed-request contract as the email gateway."""

import logging

from clients.signed_gateway import GatewayError, SignedGateway

logger = logging.getLogger(__name__)


class SmsGatewayError(GatewayError):
    """Raised when SMS gateway request fails."""


class SmsGatewayClient:
    """Send text messages via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str):
        self._gateway = SignedGateway(gateway_url, api_key, hmac_secret)

    def send_sms(self, to: str, body: str) -> None:
        """
        Send a text message.

        Raises:
            SmsGatewayError: On gateway failure
        """
        try:
            self._gateway.send({"phone": to, "body": body})
        except GatewayError as e:
            raise SmsGatewayError(str(e)) from e
        logger.info(f"SMS sent to {to}")
