from __future__ import annotations

import logging
import re
from typing import Dict, Optional

import httpx

from findreplace.client.admin import AdminClient
from findreplace.models import ReadResult

logger = logging.getLogger("findreplace")

EMPTY_PAGE_SKELETONS = {
    "<body><header></header><main><div></div></main><footer></footer></body>",
    "<body><header></header><main></main><footer></footer></body>",
    "<body><main><div></div></main></body>",
    "<body><main></main></body>",
    "<body></body>",
    "<html><body></body></html>",
}

_WHITESPACE = re.compile(r"\s+")


def is_page_empty(content: Optional[str]) -> bool:
    """True when the source holds no content beyond an empty page skeleton."""
    if not content:
        return True
    normalized = _WHITESPACE.sub("", content).lower()
    return normalized in EMPTY_PAGE_SKELETONS


class ContentStore:
    """Reads and writes document sources, caching reads by path.

    The cache dict belongs to the scan session and is shared with it.
    """

    def __init__(self, client: AdminClient, cache: Optional[Dict[str, str]] = None) -> None:
        self.client = client
        self.cache: Dict[str, str] = cache if cache is not None else {}

    async def read(self, path: str, use_cache: bool = True) -> ReadResult:
        if use_cache and path in self.cache:
            return ReadResult(success=True, content=self.cache[path])
        try:
            response = await self.client.get_source(path)
        except httpx.HTTPError as exc:
            logger.warning("Fetch failed for %s: %s", path, exc)
            return ReadResult(success=False, error=str(exc) or type(exc).__name__)
        if not response.is_success:
            logger.warning("Fetch failed for %s: HTTP %d", path, response.status_code)
            return ReadResult(success=False, error=f"HTTP {response.status_code}")
        content = response.text
        if use_cache:
            self.cache[path] = content
        return ReadResult(success=True, content=content)

    async def write(self, path: str, content: str) -> bool:
        try:
            response = await self.client.put_source(path, content)
        except httpx.HTTPError as exc:
            logger.warning("Write failed for %s: %s", path, exc)
            return False
        if not response.is_success:
            logger.warning("Write failed for %s: HTTP %d", path, response.status_code)
            return False
        self.cache.pop(path, None)
        logger.info("Saved %s", path)
        return True

    def invalidate_all(self) -> None:
        self.cache.clear()
