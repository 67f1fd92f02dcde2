"""
Valkey (Redis-compatible) client for rate-limit counters.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        hits = client.incr("ratelimit:/api/auth/login:10.0.0.1")
        client.pexpire("ratelimit:/api/auth/login:10.0.0.1", 3_600_000)
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def incr(self, key: str) -> int:
        """
        Increment key by 1.

        Creates key with value 1 if it doesn't exist.
        Returns the new value.
        """
        return self._client.incr(key)

    def pexpire(self, key: str, milliseconds: int) -> bool:
        """Set a TTL in milliseconds. False if the key doesn't exist."""
        return bool(self._client.pexpire(key, milliseconds))

    def pttl(self, key: str) -> int:
        """
        Get remaining TTL in milliseconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining milliseconds
        """
        return self._client.pttl(key)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
