from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from findreplace.config import Settings

logger = logging.getLogger("findreplace")

LIFECYCLE_METHODS = {"preview": "POST", "publish": "POST", "unpublish": "DELETE"}


def _clean(path: str) -> str:
    return path[1:] if path.startswith("/") else path


class AdminClient:
    """Async client for the content-admin and lifecycle APIs.

    Every method returns the raw ``httpx.Response``; transport failures
    propagate as ``httpx.HTTPError`` so callers can record them per file.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {settings.token}"},
            timeout=settings.request_timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "AdminClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    # content admin

    async def list_entries(self, path: str) -> httpx.Response:
        return await self.client.get(f"{self.settings.admin_url}/list/{_clean(path)}")

    async def get_source(self, path: str) -> httpx.Response:
        return await self.client.get(f"{self.settings.admin_url}/source/{_clean(path)}")

    async def put_source(self, path: str, content: str) -> httpx.Response:
        files = {"data": (path.split("/")[-1], content.encode("utf-8"), "text/html")}
        return await self.client.post(
            f"{self.settings.admin_url}/source/{_clean(path)}", files=files
        )

    async def create_version(self, path: str, label: str) -> httpx.Response:
        return await self.client.post(
            f"{self.settings.admin_url}/versionsource/{_clean(path)}",
            json={"label": label},
        )

    async def list_versions(self, path: str) -> httpx.Response:
        return await self.client.get(
            f"{self.settings.admin_url}/versionlist/{_clean(path)}"
        )

    async def get_version(self, url: str) -> httpx.Response:
        # version urls come back site-relative, e.g. /versionsource/org/site/...
        if url.startswith("http"):
            return await self.client.get(url)
        return await self.client.get(f"{self.settings.admin_url}{url}")

    # lifecycle

    def lifecycle_url(self, operation: str, path: str, branch: str) -> str:
        endpoint = "preview" if operation == "preview" else "live"
        s = self.settings
        return f"{s.helix_url}/{endpoint}/{s.org}/{s.site}/{branch}{path}"

    async def lifecycle(self, operation: str, path: str, branch: str) -> httpx.Response:
        method = LIFECYCLE_METHODS[operation]
        url = self.lifecycle_url(operation, path, branch)
        logger.debug("%s %s", method, url)
        return await self.client.request(method, url)

    async def bulk_lifecycle(
        self, operation: str, paths: List[str], branch: str
    ) -> httpx.Response:
        payload: Dict[str, Any] = {"forceUpdate": True, "paths": paths, "delete": False}
        url = self.lifecycle_url(operation, "/*", branch)
        logger.debug("POST %s (%d paths)", url, len(paths))
        return await self.client.post(url, json=payload)
