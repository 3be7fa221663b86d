"""Throttling of code requests and wrong-code guesses per destination.

Two counters per destination (email address or phone number) live in Valkey:
    ratelimit:otp:<destination>     codes requested
    ratelimit:verify:<destination>  wrong codes submitted

Both windows slide: every counted event pushes the expiry back out, so a
client that keeps hammering while locked out stays locked out.
"""

from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from clients.valkey_client import ValkeyClient


class RateLimiter:
    """Sliding-window counters for code issuance and code verification."""

    KEY_PREFIX = "ratelimit:otp:"
    VERIFY_KEY_PREFIX = "ratelimit:verify:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._max_requests = config.rate_limit_attempts
        self._max_wrong_codes = config.otp_verify_attempts
        self._window_seconds = config.rate_limit_window_minutes * 60

    @staticmethod
    def _normalize(destination: str) -> str:
        return destination.strip().lower()

    def _key(self, destination: str) -> str:
        return self.KEY_PREFIX + self._normalize(destination)

    def _verify_key(self, destination: str) -> str:
        return self.VERIFY_KEY_PREFIX + self._normalize(destination)

    def _count(self, key: str) -> int:
        count = self._valkey.incr(key)
        self._valkey.expire(key, self._window_seconds)
        return count

    def _locked_out(self, key: str) -> RateLimitedError:
        return RateLimitedError(retry_after_seconds=max(self._valkey.ttl(key), 1))

    def check_rate_limit(self, destination: str) -> None:
        """Record one code request for destination.

        Raises:
            RateLimitedError: once more than rate_limit_attempts requests
                fall inside the window. retry_after_seconds is the
                remaining window, never less than 1.
        """
        key = self._key(destination)
        if self._count(key) > self._max_requests:
            raise self._locked_out(key)

    def check_verification_allowed(self, destination: str) -> None:
        """Refuse any code check, right or wrong, while destination is locked out.

        Raises:
            RateLimitedError: otp_verify_attempts wrong codes are already
                recorded inside the window.
        """
        key = self._verify_key(destination)
        failures = self._valkey.get(key)
        if failures is not None and int(failures) >= self._max_wrong_codes:
            raise self._locked_out(key)

    def record_failed_verification(self, destination: str) -> None:
        """Count one wrong code.

        Raises:
            RateLimitedError: this failure reached otp_verify_attempts. The
                caller must revoke whatever code was being guessed.
        """
        key = self._verify_key(destination)
        if self._count(key) >= self._max_wrong_codes:
            raise self._locked_out(key)

    def reset_rate_limit(self, destination: str) -> None:
        """Forget both counters after the destination proved ownership."""
        self._valkey.delete(self._key(destination))
        self._valkey.delete(self._verify_key(destination))
