"""HTTP page loader feeding tabs with documents."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import aiohttp

from config import settings

logger = logging.getLogger(__name__)


class PageLoader:
    """Fetches page HTML with a shared session and a per-domain delay."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.headers = settings.HEADERS
        self.session = session
        self._owns_session = session is None
        self.last_error: Optional[Exception] = None
        self.last_page_url: Optional[str] = None
        self._last_request_time: dict[str, float] = {}
        self._rate_limit_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=settings.REQUEST_TIMEOUT)
            connector = aiohttp.TCPConnector(limit_per_host=5, limit=20)
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=timeout,
                connector=connector,
            )
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def _apply_rate_limit(self, url: str) -> None:
        async with self._rate_limit_lock:
            domain = urlparse(url).netloc
            delay = settings.REQUEST_DELAY_SECONDS
            last = self._last_request_time.get(domain)
            if last is not None:
                elapsed = time.monotonic() - last
                if elapsed < delay:
                    logger.debug("Rate limiting: sleeping %.2fs for %s", delay - elapsed, domain)
                    await asyncio.sleep(delay - elapsed)
            self._last_request_time[domain] = time.monotonic()

    async def fetch(self, url: str) -> Optional[str]:
        """Return the page HTML, or None when it could not be loaded."""
        await self._apply_rate_limit(url)
        self.last_error = None
        self.last_page_url = None

        session = await self._get_session()
        try:
            async with session.get(url) as response:
                response.raise_for_status()
                self.last_page_url = str(response.url)
                return await response.text()
        except asyncio.TimeoutError as exc:
            self.last_error = exc
            logger.warning("Timeout fetching page %s", url)
            return None
        except aiohttp.ClientResponseError as exc:
            self.last_error = exc
            logger.error("HTTP error fetching page %s (status %s)", url, exc.status)
            return None
        except aiohttp.ClientError as exc:
            self.last_error = exc
            logger.warning("Error fetching page %s: %s", url, exc)
            logger.debug("Page fetch error details", exc_info=True)
            return None
