"""
Published-spreadsheet feed fetcher.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from dealfeed.config import HTTP_HEADERS, HTTP_TIMEOUT_SECONDS, NO_CACHE_HEADERS

logger = logging.getLogger(__name__)


class SheetFeedFetcher:
    """Fetches the raw tab-separated export of the deals sheet."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.client = client
        self.timeout = timeout

    async def fetch(self) -> str:
        """
        Download the current feed snapshot.

        Returns:
            Raw feed text, or an empty string when the sheet is unreachable
            or answers with a non-success status
        """
        if not self.url:
            logger.warning("No feed URL configured")
            return ""

        # Published sheets are served through a CDN; bust it on every request.
        params = {"cb": str(int(time.time() * 1000))}
        headers = {**HTTP_HEADERS, **NO_CACHE_HEADERS}

        try:
            # published exports answer with a 307 to a CDN host
            if self.client is not None:
                response = await self.client.get(
                    self.url, params=params, headers=headers, follow_redirects=True
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(
                        self.url, params=params, headers=headers, follow_redirects=True
                    )
        except httpx.HTTPError as e:
            logger.warning("Error fetching deals feed: %s", e)
            return ""

        if not response.is_success:
            logger.warning("Deals feed returned HTTP %s", response.status_code)
            return ""

        return response.text
