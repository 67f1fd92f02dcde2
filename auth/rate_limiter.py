"""Per-route rate limiting keyed by client IP.

Fixed window in Valkey: the first hit creates the counter and starts the
window, later hits only increment. The window does not slide, so a client can
burst up to 2x the limit across a window boundary.
"""

import logging
import math

from clients.valkey_client import ValkeyClient
from auth.config import RateLimitRule
from auth.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window request counters using Valkey."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, valkey: ValkeyClient, rules: dict[str, RateLimitRule]):
        self._valkey = valkey
        self._rules = dict(rules)

    def _key(self, client_ip: str, route: str) -> str:
        return f"{self.KEY_PREFIX}{route}:{client_ip}"

    def rule_for(self, route: str) -> RateLimitRule | None:
        return self._rules.get(route)

    def check(self, client_ip: str, route: str) -> None:
        """Count a hit and reject it if the window is already full.

        Routes without a rule are never throttled.

        Raises:
            RateLimitedError: If this hit exceeds max_hits for the window.
        """
        rule = self._rules.get(route)
        if rule is None:
            return

        key = self._key(client_ip, route)

        # INCR is atomic, so concurrent hits never lose counts.
        count = self._valkey.incr(key)

        ttl_ms = self._valkey.pttl(key)
        if count == 1 or ttl_ms < 0:
            # New counter (or one left without a TTL): start the window now.
            self._valkey.pexpire(key, rule.window_ms)
            ttl_ms = rule.window_ms

        if count > rule.max_hits:
            retry_after = max(math.ceil(ttl_ms / 1000), 1)
            logger.warning(f"Rate limit hit for {client_ip} on {route} ({count}/{rule.max_hits})")
            raise RateLimitedError(retry_after_seconds=retry_after)
