"""
Outbound email through the signed HTTP gateway.

LitVerse sends only plain-text transactional mail (verification codes and
password reset links), always as a "custom" message so the gateway does no
templating of its own.
"""

import logging

from clients.signed_gateway import GatewayError, SignedGateway

logger = logging.getLogger(__name__)

# Mailbox identities the gateway is allowed to send from
SENDERS = ("auth", "system")


class EmailGatewayError(GatewayError):
    """Email could not be handed to the gateway."""


class EmailGatewayClient:
    """Plain-text email over an HMAC-signed gateway endpoint."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str):
        """
        Raises:
            ValueError: If any credential is empty
        """
        self._gateway = SignedGateway(gateway_url, api_key, hmac_secret)

    def send_email(self, to: str, subject: str, body: str, sender: str = "system") -> None:
        """
        Raises:
            ValueError: sender is not one of SENDERS
            EmailGatewayError: the gateway refused or could not be reached
        """
        if sender not in SENDERS:
            raise ValueError(f"sender must be one of {SENDERS}, got '{sender}'")

        message = {"type": "custom", "email": to, "subject": subject, "body": body, "sender": sender}
        try:
            self._gateway.send(message)
        except GatewayError as e:
            raise EmailGatewayError(str(e)) from e
        logger.info(f"Email '{subject}' sent to {to} as {sender}")
