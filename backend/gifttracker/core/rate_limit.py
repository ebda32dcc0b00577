"""Throttling for public share-link resolution.

Attempts are counted per client address and share code, so a client guessing
passwords for one link is slowed down without being locked out of the others.
"""

import logging
import time
from collections import deque

from fastapi import HTTPException, Request, status

from gifttracker.core.audit import audit_rate_limit_exceeded
from gifttracker.core.config import settings


logger = logging.getLogger("gifttracker.rate_limit")

MAX_TRACKED_KEYS = 10000


class ShareCodeLimiter:
    """Sliding-window counter of resolution attempts keyed by ``(client, share_code)``."""

    def __init__(self, max_keys: int = MAX_TRACKED_KEYS):
        self.max_keys = max_keys
        self._attempts: dict[tuple[str, str], deque[float]] = {}
        self._rejected = 0

    def hit(self, client: str, share_code: str, limit: int, window_seconds: int, now: float | None = None) -> int:
        """Record an attempt.

        Returns 0 when the attempt is allowed, otherwise the number of seconds
        until the oldest attempt leaves the window.
        """
        now = time.monotonic() if now is None else now
        key = (client, share_code)
        attempts = self._attempts.get(key)
        if attempts is None:
            if len(self._attempts) >= self.max_keys:
                self._evict(now - window_seconds)
            attempts = self._attempts[key] = deque()

        cutoff = now - window_seconds
        while attempts and attempts[0] <= cutoff:
            attempts.popleft()

        if len(attempts) >= limit:
            self._rejected += 1
            return max(1, int(attempts[0] + window_seconds - now) + 1)
        attempts.append(now)
        return 0

    def _evict(self, cutoff: float) -> None:
        idle = [key for key, attempts in self._attempts.items() if not attempts or attempts[-1] <= cutoff]
        for key in idle:
            del self._attempts[key]
        if len(self._attempts) >= self.max_keys:
            # still full: drop the least recently seen half
            by_age = sorted(self._attempts, key=lambda key: self._attempts[key][-1])
            for key in by_age[: self.max_keys // 2]:
                del self._attempts[key]
        logger.warning("Share rate limiter reached %d keys, %d remain", self.max_keys, len(self._attempts))

    def reset(self) -> None:
        self._attempts.clear()
        self._rejected = 0

    def get_stats(self) -> dict:
        return {
            "total_entries": len(self._attempts),
            "rejected": self._rejected,
            "max_entries": self.max_keys,
        }


limiter = ShareCodeLimiter()


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def check_share_rate_limit(request: Request, share_code: str) -> None:
    """Raise 429 with ``Retry-After`` once a client exceeds its budget for ``share_code``."""
    if not settings.rate_limit_enabled:
        return

    client = client_address(request)
    retry_after = limiter.hit(
        client,
        share_code,
        settings.rate_limit_share_requests,
        settings.rate_limit_window_seconds,
    )
    if retry_after:
        logger.warning("Share rate limit exceeded client=%s retry_after=%ds", client, retry_after)
        audit_rate_limit_exceeded(request, request.url.path, retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )
