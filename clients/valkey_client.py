"""
Valkey (Redis-compatible) cache for short-lived verification state.

Keys used by the auth layer:
    otp:<channel>:<destination>     issued one-time code
    registration:<email>            pending registration (JSON)
    password_reset:<token>          user id awaiting a new password
    ratelimit:otp:<destination>     request counter
    ratelimit:verify:<destination>  wrong-code counter

Everything pending is written with a TTL, so expiry needs no sweeper.
Connection errors propagate; there is no fallback store.
"""

import json
import logging
from typing import Any

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """String and JSON values with optional TTL over redis-py."""

    def __init__(self, url: str):
        """
        Connect and ping once so a bad URL fails at startup.

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("Connected to Valkey")

    def ping(self) -> bool:
        """Raises redis.ConnectionError if unreachable."""
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Overwrite key. A new TTL (or none) replaces the old one."""
        if ttl_seconds is None:
            self._client.set(key, value)
        else:
            self._client.setex(key, ttl_seconds, value)

    def delete(self, key: str) -> bool:
        """
        True only for the caller that actually removed the key.

        Consumers of single-use entries rely on this to settle races.
        """
        return self._client.delete(key) == 1

    def ttl(self, key: str) -> int:
        """Seconds left; -2 for a missing key, -1 for one without expiry."""
        return self._client.ttl(key)

    def incr(self, key: str) -> int:
        """Atomic counter; a missing key starts at 1."""
        return self._client.incr(key)

    def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(self._client.expire(key, ttl_seconds))

    def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        self.set(key, json.dumps(value), ttl_seconds)

    def get_json(self, key: str) -> dict[str, Any] | None:
        """
        None for a missing key.

        Raises ValueError if the stored value is not JSON.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        self._client.close()
        logger.info("Valkey connection closed")
