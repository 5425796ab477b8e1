from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx

from findreplace.client.admin import AdminClient
from findreplace.errors import BackupError, FetchError, WriteError
from findreplace.models import FileOutcome, VersionRecord
from findreplace.storage.content import ContentStore
from findreplace.utils import utc_now_epoch_ms

logger = logging.getLogger("findreplace")

DEFAULT_LABEL = "Version created by FindReplace"


def _as_record(item: Any) -> Optional[VersionRecord]:
    if not isinstance(item, dict):
        return None
    timestamp = item.get("timestamp")
    try:
        timestamp = int(timestamp) if timestamp is not None else None
    except (TypeError, ValueError):
        timestamp = None
    return VersionRecord(
        url=item.get("url") or "",
        label=item.get("label") or "",
        timestamp=timestamp,
    )


class VersionManager:
    """Creates, lists and restores remote backup versions of documents."""

    def __init__(self, client: AdminClient, store: Optional[ContentStore] = None) -> None:
        self.client = client
        self.store = store or ContentStore(client)

    async def backup(self, path: str, label: str = DEFAULT_LABEL) -> Optional[VersionRecord]:
        """Snapshot the current remote content of ``path``.

        Returns None when the version could not be created.
        """
        try:
            response = await self.client.create_version(path, label)
        except httpx.HTTPError as exc:
            logger.warning("Backup failed for %s: %s", path, exc)
            return None
        if not response.is_success:
            logger.warning("Backup failed for %s: HTTP %d", path, response.status_code)
            return None

        record = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                record = _as_record(response.json())
            except ValueError:
                record = None
        if record is None or not record.timestamp:
            record = VersionRecord(
                url=record.url if record else "",
                label=label,
                timestamp=utc_now_epoch_ms(),
            )
        logger.info("Backup '%s' created for %s", label, path)
        return record

    async def list_versions(self, path: str) -> Optional[List[VersionRecord]]:
        try:
            response = await self.client.list_versions(path)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Cannot list versions of %s: %s", path, exc)
            return None

        if isinstance(payload, dict):
            for key in ("data", "versions"):
                if isinstance(payload.get(key), list):
                    payload = payload[key]
                    break
        if not isinstance(payload, list):
            logger.warning("Unexpected version list payload for %s", path)
            return None
        records = [_as_record(item) for item in payload]
        return [r for r in records if r is not None]

    async def fetch_version(self, record: VersionRecord) -> Optional[str]:
        try:
            response = await self.client.get_version(record.url)
        except httpx.HTTPError as exc:
            logger.warning("Cannot fetch version %s: %s", record.url, exc)
            return None
        if not response.is_success:
            logger.warning("Cannot fetch version %s: HTTP %d", record.url, response.status_code)
            return None
        return response.text

    async def revert_to_latest(self, path: str) -> FileOutcome:
        """Restore the most recent labelled version of ``path``.

        The current content is itself backed up first, so a revert can be
        undone the same way.
        """
        try:
            label = await self._restore_latest(path)
        except BackupError as exc:
            return FileOutcome(path, success=False, reason=str(exc), skipped=True)
        except WriteError as exc:
            return FileOutcome(path, success=False, reason=str(exc), backup_created=True)
        except FetchError as exc:
            return FileOutcome(path, success=False, reason=str(exc))
        logger.info("Reverted %s to '%s'", path, label)
        return FileOutcome(path, success=True, backup_created=True)

    async def _restore_latest(self, path: str) -> str:
        versions = await self.list_versions(path)
        if versions is None:
            raise FetchError("Cannot list versions")
        named = [v for v in versions if v.url and v.label and v.timestamp]
        if not named:
            raise FetchError("No labelled versions")
        latest = max(named, key=lambda v: v.timestamp or 0)

        content = await self.fetch_version(latest)
        if not content:
            raise FetchError("Cannot fetch version content")
        if await self.backup(path, f"Revert({latest.label})") is None:
            raise BackupError("Revert backup could not be created")
        if not await self.store.write(path, content):
            raise WriteError("Write failed")
        return latest.label
