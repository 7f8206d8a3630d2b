"""OAuth access-token cache with expiry skew and single-flight refresh."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_EXPIRES_IN = 1800.0


@dataclass
class AccessToken:
    token: str
    expires_in: float = DEFAULT_EXPIRES_IN


class TokenCache:
    """
    Holds one bearer token and refreshes it before it expires.

    A token is reused only while it has more than ``skew_seconds`` of life
    left. Concurrent callers that find it stale share a single refresh: the
    first one fetches under the lock, the rest re-check and reuse its token.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[AccessToken]],
        skew_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self.skew_seconds = skew_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    def _fresh(self) -> bool:
        return self._token is not None and self._expires_at > self._clock() + self.skew_seconds

    async def get(self) -> str:
        """Return a valid token, refreshing it if needed. Fetch errors propagate."""
        if self._fresh():
            return self._token
        async with self._lock:
            if self._fresh():
                return self._token
            access = await self._fetch()
            self.refresh_count += 1
            self._token = access.token
            self._expires_at = self._clock() + float(access.expires_in or DEFAULT_EXPIRES_IN)
            logger.debug("Access token refreshed", expires_in=access.expires_in)
            return self._token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
