"""One-time codes bound to a destination (email address or phone number).

Codes live in Valkey under `otp:<channel>:<destination>` with a TTL equal to
otp_expiry_minutes. Issuing again overwrites the previous code, so at most
one code per destination is ever live. A successful check deletes the code.

The engine itself does not count wrong guesses. Callers pair it with
RateLimiter.check_verification_allowed / record_failed_verification and
invalidate() the code once the wrong-code limit is reached.

Comparison is plain string equality rather than hmac.compare_digest: a
six-digit code that dies after ten minutes and is revoked after a handful
of wrong guesses leaks nothing useful through timing.
"""

import logging
import secrets
from dataclasses import dataclass

from auth.config import AuthConfig
from auth.exceptions import CodeExpiredError, CodeMismatchError
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)

OTP_DIGITS = 6


def generate_code() -> str:
    """Uniform random zero-padded numeric code, 000000-999999."""
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def codes_match(expected: str, submitted: str | None) -> bool:
    return submitted is not None and expected == submitted.strip()


class OtpEngine:
    """Issue and verify single-use codes against the cache."""

    KEY_PREFIX = "otp:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, channel: str, destination: str) -> str:
        return f"{self.KEY_PREFIX}{channel}:{destination}"

    def issue(self, channel: str, destination: str) -> str:
        """Store a fresh code for destination, replacing any live one.

        Returns the code so the caller can dispatch it.
        """
        code = generate_code()
        self._valkey.set(
            self._key(channel, destination),
            code,
            ttl_seconds=self._config.otp_ttl_seconds,
        )
        logger.info(f"OTP issued for {channel} destination")
        return code

    def verify(self, channel: str, destination: str, submitted_code: str) -> None:
        """Check a submitted code and consume it on success.

        Raises:
            CodeExpiredError: no live code (never issued, used, or expired).
            CodeMismatchError: live code differs. The code stays live.
        """
        key = self._key(channel, destination)
        expected = self._valkey.get(key)

        if expected is None:
            raise CodeExpiredError("OTP not found or expired")
        if not codes_match(expected, submitted_code):
            raise CodeMismatchError("Invalid OTP")

        # Only one concurrent verifier gets to delete the key
        if not self._valkey.delete(key):
            raise CodeExpiredError("OTP already used")

    def invalidate(self, channel: str, destination: str) -> None:
        self._valkey.delete(self._key(channel, destination))


@dataclass
class OtpDispatchResult:
    """Outcome of a code request as reported to the client."""

    sent: bool
    expires_in_seconds: int
    # Only set when delivery failed and insecure_otp_disclosure is on
    otp: str | None = None


def dispatch_result(sent: bool, code: str, config: AuthConfig) -> OtpDispatchResult:
    disclosed = None
    if not sent and config.insecure_otp_disclosure:
        logger.warning("OTP delivery failed; disclosing code in response (insecure mode)")
        disclosed = code
    return OtpDispatchResult(
        sent=sent,
        expires_in_seconds=config.otp_ttl_seconds,
        otp=disclosed,
    )
