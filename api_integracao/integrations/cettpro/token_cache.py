"""
Process-wide bearer token cache for the CETTPRO API.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessToken:
    """Bearer token as returned by the credential exchange."""
    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    role: Optional[str] = None


class TokenCache:
    """Holds one bearer token and serializes its refresh.

    Only one credential exchange runs at a time: callers that arrive while a
    refresh is in flight wait on the lock and then see the refreshed token.
    """

    def __init__(
        self,
        expiration_buffer: int = 300,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.expiration_buffer = expiration_buffer
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def current(self) -> Optional[str]:
        """Return the cached token if it is still valid."""
        if self._token and self._expires_at and self._clock() < self._expires_at:
            return self._token
        return None

    async def get_or_refresh(self, exchange: Callable[[], Awaitable[AccessToken]]) -> str:
        """
        Return a valid token, running ``exchange`` when none is cached.

        Args:
            exchange: Coroutine function performing the remote credential exchange

        Returns:
            Bearer token string
        """
        token = self.current()
        if token:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self.current()
            if token:
                return token

            result = await exchange()
            self.store(result)
            return result.access_token

    def store(self, token: AccessToken) -> None:
        lifetime = max(0, token.expires_in - self.expiration_buffer)
        self._token = token.access_token
        self._expires_at = self._clock() + timedelta(seconds=lifetime)
        logger.info(f"Partner token cached until {self._expires_at.isoformat()}")

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        if self._token:
            logger.info("Partner token invalidated")
        self._token = None
        self._expires_at = None
