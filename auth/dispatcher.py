"""Outbound delivery of codes and reset links.

Delivery failures are never fatal: a gateway error (or a channel with no
gateway configured) is logged and reported as False so the calling flow can
continue and decide what to tell the client.
"""

import logging

from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.sms_client import SmsGatewayClient, SmsGatewayError

logger = logging.getLogger(__name__)

_PURPOSE_SUBJECTS = {
    "registration": "Verify your email",
    "login": "Your sign-in code",
}


class NotificationDispatcher:
    """Send codes by email or SMS; report whether delivery succeeded."""

    def __init__(
        self,
        email_client: EmailGatewayClient | None,
        sms_client: SmsGatewayClient | None,
        app_name: str,
        code_lifetime_minutes: int,
    ):
        self._email_client = email_client
        self._sms_client = sms_client
        self._app_name = app_name
        self._code_lifetime_minutes = code_lifetime_minutes

    def send_email_code(self, email: str, code: str, purpose: str = "login") -> bool:
        subject = f"{self._app_name} - {_PURPOSE_SUBJECTS.get(purpose, 'Your code')}"
        body = (
            f"Your {self._app_name} verification code is {code}.\n\n"
            f"It expires in {self._code_lifetime_minutes} minutes. "
            "If you did not request it, you can ignore this email."
        )
        return self._send_email(email, subject, body)

    def send_sms_code(self, phone: str, code: str) -> bool:
        if self._sms_client is None:
            logger.warning("SMS gateway not configured; code not delivered")
            return False
        body = (
            f"{code} is your {self._app_name} code. "
            f"Valid for {self._code_lifetime_minutes} minutes."
        )
        try:
            self._sms_client.send_sms(phone, body)
        except SmsGatewayError as e:
            logger.warning(f"SMS delivery failed: {e}")
            return False
        return True

    def send_password_reset(self, email: str, link: str, lifetime_minutes: int) -> bool:
        subject = f"{self._app_name} - Password reset request"
        body = (
            "You requested to reset your password. Open the link below:\n\n"
            f"{link}\n\n"
            f"This link will expire in {lifetime_minutes} minutes."
        )
        return self._send_email(email, subject, body)

    def _send_email(self, to: str, subject: str, body: str) -> bool:
        if self._email_client is None:
            logger.warning("Email gateway not configured; message not delivered")
            return False
        try:
            self._email_client.send_email(to=to, subject=subject, body=body, sender="auth")
        except EmailGatewayError as e:
            logger.warning(f"Email delivery failed: {e}")
            return False
        return True
