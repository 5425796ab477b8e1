from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx

from findreplace.client.admin import AdminClient
from findreplace.errors import DiscoveryError
from findreplace.models import FileDescriptor

logger = logging.getLogger("findreplace")


@dataclass
class DiscoveryOptions:
    recurse_subfolders: bool = False
    exclude_path_fragments: List[str] = field(default_factory=list)
    modified_since: Optional[datetime] = None
    # None lists every file that carries an extension
    only_extension: Optional[str] = "html"


@dataclass
class DiscoveryResult:
    files: List[FileDescriptor] = field(default_factory=list)
    failed_paths: List[str] = field(default_factory=list)
    cancelled: bool = False

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self):
        return iter(self.files)


def normalize_root_paths(paths: Iterable[str]) -> List[str]:
    """Give every root a leading slash and drop duplicates, keeping order."""
    roots: List[str] = []
    for raw in paths:
        path = (raw or "").strip()
        if not path:
            continue
        path = path if path.startswith("/") else f"/{path}"
        path = path.rstrip("/") or "/"
        if path == "/":
            path = ""
        if path not in roots:
            roots.append(path)
    return roots


def _as_datetime(epoch: float) -> datetime:
    # listings report seconds; tolerate millisecond stamps
    if epoch > 1e11:
        epoch = epoch / 1000
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


def is_excluded(path: str, fragments: Iterable[str]) -> bool:
    for fragment in fragments:
        fragment = fragment.strip()
        if not fragment:
            continue
        needle = fragment if fragment.startswith("/") else f"/{fragment}"
        if needle in path:
            return True
    return False


class Discovery:
    IGNORED_NAMES = {".DS_Store"}

    def __init__(self, client: AdminClient) -> None:
        self.client = client
        self.settings = client.settings

    async def enumerate(
        self,
        root_paths: List[str],
        options: DiscoveryOptions,
        cancel: Optional[asyncio.Event] = None,
    ) -> DiscoveryResult:
        """List candidate files under every root path.

        Roots are site-relative (``/blog``); an empty list means the whole
        site. The crawl as a whole is bounded by ``discovery_timeout``.
        """
        self.settings.require_site()
        result = DiscoveryResult()
        roots = normalize_root_paths(root_paths) or [""]
        try:
            await asyncio.wait_for(
                self._crawl_roots(roots, options, cancel, result),
                timeout=self.settings.discovery_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise DiscoveryError(
                f"File discovery timed out after {self.settings.discovery_timeout:.0f}s"
            ) from exc
        result.cancelled = bool(cancel and cancel.is_set())
        logger.info(
            "Discovered %d files under %d roots (%d listing failures)",
            len(result.files),
            len(roots),
            len(result.failed_paths),
        )
        return result

    async def _crawl_roots(
        self,
        roots: List[str],
        options: DiscoveryOptions,
        cancel: Optional[asyncio.Event],
        result: DiscoveryResult,
    ) -> None:
        listings = await asyncio.gather(
            *(
                self._crawl(f"{self.settings.site_prefix}{root}", options, cancel, result)
                for root in roots
            )
        )
        seen = set()
        for files in listings:
            for descriptor in files:
                if descriptor.path in seen:
                    continue
                seen.add(descriptor.path)
                result.files.append(descriptor)

    async def _crawl(
        self,
        folder: str,
        options: DiscoveryOptions,
        cancel: Optional[asyncio.Event],
        result: DiscoveryResult,
    ) -> List[FileDescriptor]:
        if cancel is not None and cancel.is_set():
            return []
        entries = await self._list(folder, result)
        files = [
            FileDescriptor.from_listing(item)
            for item in entries
            if self._accepts_file(item, options)
        ]
        if options.recurse_subfolders:
            subfolders = [
                item["path"]
                for item in entries
                if self._is_folder(item)
                and not is_excluded(item["path"], options.exclude_path_fragments)
            ]
            nested = await asyncio.gather(
                *(self._crawl(path, options, cancel, result) for path in subfolders)
            )
            for batch in nested:
                files.extend(batch)
        return files

    async def _list(self, folder: str, result: DiscoveryResult) -> List[Dict[str, Any]]:
        try:
            response = await self.client.list_entries(folder)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Cannot list %s: %s", folder, exc)
            result.failed_paths.append(folder)
            return []
        if not isinstance(data, list):
            logger.warning("Unexpected listing payload for %s", folder)
            result.failed_paths.append(folder)
            return []
        return [item for item in data if isinstance(item, dict) and item.get("path")]

    def _is_folder(self, item: Dict[str, Any]) -> bool:
        return (
            not item.get("ext")
            and not item.get("lastModified")
            and item.get("name") not in self.IGNORED_NAMES
        )

    def _accepts_file(self, item: Dict[str, Any], options: DiscoveryOptions) -> bool:
        ext = item.get("ext")
        if not ext or not item.get("lastModified"):
            return False
        if options.only_extension and ext != options.only_extension:
            return False
        if is_excluded(item["path"], options.exclude_path_fragments):
            return False
        if options.modified_since is not None:
            modified = _as_datetime(item["lastModified"])
            since = options.modified_since
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            if modified < since:
                return False
        return True
