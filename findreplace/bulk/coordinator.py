from __future__ import annotations

import logging
from typing import List, Sequence

import httpx

from findreplace.client.admin import AdminClient
from findreplace.errors import ConfigurationError
from findreplace.models import BulkOperation, BulkSummary, FileDescriptor
from findreplace.utils import run_bounded

logger = logging.getLogger("findreplace")


class BulkOpsCoordinator:
    """Moves selected documents through preview, publish and unpublish."""

    def __init__(self, client: AdminClient) -> None:
        self.client = client
        self.settings = client.settings

    def site_path(self, path: str) -> str:
        """Translate a content path to the site-relative form lifecycle calls use."""
        prefix = self.settings.site_prefix
        if path.startswith(prefix):
            path = path[len(prefix):]
        if not path.startswith("/"):
            path = f"/{path}"
        if path.endswith(".html"):
            path = path[: -len(".html")]
        return path

    def branch_for(self, operation: BulkOperation) -> str:
        if operation is BulkOperation.PREVIEW:
            return self.settings.ref or "main"
        return "main"

    def copy_urls(self, files: Sequence[FileDescriptor]) -> List[str]:
        s = self.settings
        base = f"https://main--{s.site}--{s.org}.{s.page_domain}"
        return [f"{base}{self.site_path(f.path)}" for f in files]

    async def transition(
        self, operation: BulkOperation, files: Sequence[FileDescriptor]
    ) -> BulkSummary:
        if not files:
            raise ConfigurationError("Please select files to process")
        self.settings.require_site()
        summary = BulkSummary(operation=operation, total=len(files))

        if operation is BulkOperation.COPY_URLS:
            summary.urls = self.copy_urls(files)
            summary.succeeded = len(summary.urls)
            return summary

        paths = [self.site_path(f.path) for f in files]
        branch = self.branch_for(operation)
        if operation is BulkOperation.UNPUBLISH:
            await self._unpublish(paths, branch, summary)
        elif len(paths) == 1:
            await self._single(operation, paths[0], branch, summary)
        else:
            await self._bulk(operation, paths, branch, summary)
        logger.info(summary.message)
        return summary

    async def _single(
        self, operation: BulkOperation, path: str, branch: str, summary: BulkSummary
    ) -> None:
        try:
            response = await self.client.lifecycle(operation.value, path, branch)
        except httpx.HTTPError as exc:
            summary.error = str(exc) or type(exc).__name__
            summary.failed_paths.append(path)
            return
        if not response.is_success:
            summary.error = f"{response.status_code} {response.reason_phrase}".strip()
            summary.failed_paths.append(path)
            return
        summary.succeeded = 1

    async def _bulk(
        self, operation: BulkOperation, paths: List[str], branch: str, summary: BulkSummary
    ) -> None:
        try:
            response = await self.client.bulk_lifecycle(operation.value, paths, branch)
        except httpx.HTTPError as exc:
            summary.error = str(exc) or type(exc).__name__
            return
        if not response.is_success:
            summary.error = (
                f"{response.status_code} {response.reason_phrase} - {response.text}".strip()
            )
            return
        summary.succeeded = len(paths)
        try:
            result = response.json()
        except ValueError:
            return
        job = result.get("job") if isinstance(result, dict) else None
        if job:
            summary.job_id = job.get("name") if isinstance(job, dict) else str(job)

    async def _unpublish(self, paths: List[str], branch: str, summary: BulkSummary) -> None:
        # no bulk primitive for unpublish; one DELETE per document
        async def unpublish_one(path: str) -> bool:
            try:
                response = await self.client.lifecycle("unpublish", path, branch)
            except httpx.HTTPError as exc:
                logger.warning("Unpublish failed for %s: %s", path, exc)
                return False
            if not response.is_success:
                logger.warning("Unpublish failed for %s: HTTP %d", path, response.status_code)
            return response.is_success

        outcomes = await run_bounded(paths, unpublish_one, self.settings.write_concurrency)
        summary.succeeded = sum(1 for ok in outcomes if ok)
        summary.failed_paths = [p for p, ok in zip(paths, outcomes) if not ok]
