"""
Async client that resolves a content identifier to a title and thumbnail via oEmbed.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ytaudio.exceptions import MetadataUnavailableError
from ytaudio.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError

log = logging.getLogger(__name__)

DEFAULT_TITLE = "Unknown Title"


class MetadataResolver:
    """
    Looks up `{title, thumbnail}` for an identifier.

    `resolve` never raises: any failure degrades to
    `{"title": "Unknown Title", "thumbnail": None}`.
    """

    OEMBED_URL = "https://www.youtube.com/oembed"
    WATCH_URL = "https://www.youtube.com/watch?v={identifier}"

    def __init__(self, timeout_seconds: float = 10):
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    async def _initialize_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout_seconds, connect=min(5, self.timeout_seconds)
                ),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def fetch(self, identifier: str) -> Dict[str, Any]:
        """
        Fetches metadata, raising MetadataUnavailableError on any failure.
        """
        session = await self._initialize_session()
        params = {"url": self.WATCH_URL.format(identifier=identifier), "format": "json"}
        try:
            async with self._circuit_breaker:
                async with session.get(self.OEMBED_URL, params=params) as r:
                    r.raise_for_status()
                    payload = await r.json(content_type=None)
        except CircuitBreakerError as e:
            raise MetadataUnavailableError(str(e)) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise MetadataUnavailableError(
                f"Metadata lookup for '{identifier}' failed: {e}"
            ) from e

        if not isinstance(payload, dict) or not isinstance(payload.get("title"), str):
            raise MetadataUnavailableError(
                f"Metadata response for '{identifier}' has no title."
            )
        thumbnail = payload.get("thumbnail_url")
        return {
            "title": payload["title"].strip() or DEFAULT_TITLE,
            "thumbnail": thumbnail if isinstance(thumbnail, str) else None,
        }

    async def resolve(self, identifier: str) -> Dict[str, Any]:
        """Returns metadata for `identifier`, or defaults if it cannot be fetched."""
        try:
            return await self.fetch(identifier)
        except MetadataUnavailableError as e:
            log.debug(f"{e}; using default metadata.")
            return {"title": DEFAULT_TITLE, "thumbnail": None}
