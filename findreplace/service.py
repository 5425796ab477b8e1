from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import replace
from typing import TYPE_CHECKING, List, Optional

from findreplace.bulk.coordinator import BulkOpsCoordinator
from findreplace.client.admin import AdminClient
from findreplace.config import Settings
from findreplace.engine.matcher import MatchEngine
from findreplace.engine.normalize import format_html
from findreplace.engine.replacer import ReplaceEngine
from findreplace.errors import BackupError, ConfigurationError, WriteError
from findreplace.models import (
    BulkOperation,
    BulkSummary,
    FileDescriptor,
    FileOutcome,
    FileResult,
    MatchRecord,
    ReplaceSummary,
    RevertSummary,
    ScanSummary,
    SearchConfiguration,
)
from findreplace.scanner.discovery import Discovery, DiscoveryOptions
from findreplace.session import ScanSession
from findreplace.storage.content import ContentStore, is_page_empty
from findreplace.utils import run_bounded
from findreplace.versions.manager import DEFAULT_LABEL, VersionManager

if TYPE_CHECKING:
    from findreplace.storage.session_store import RunStore

logger = logging.getLogger("findreplace")

_JSON_PREFIX = re.compile(r"^\)\]\}',?\s*")


def normalize_json_text(content: str) -> str:
    """Drop a BOM and the anti-XSSI ``)]}'`` prefix some JSON sources carry."""
    text = content.lstrip()
    if text.startswith("\ufeff"):
        text = text[1:]
    return _JSON_PREFIX.sub("", text, count=1)


class FindReplaceService:
    """Runs scan, replace, revert, lifecycle and export over one session."""

    def __init__(
        self,
        client: AdminClient,
        session: Optional[ScanSession] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.client = client
        self.settings = settings or client.settings
        self.session = session or ScanSession(page_size=self.settings.page_size)
        self.store = ContentStore(client, self.session.content_cache)
        self.discovery = Discovery(client)
        self.matcher = MatchEngine()
        self.replacer = ReplaceEngine(self.matcher)
        self.versions = VersionManager(client, self.store)
        self.bulk_ops = BulkOpsCoordinator(client)

    # scan

    async def scan(
        self,
        config: SearchConfiguration,
        root_paths: List[str],
        options: Optional[DiscoveryOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ScanSummary:
        config.validate_for_scan()
        self.settings.require_site()
        options = options or DiscoveryOptions()
        if config.find_json_files:
            options = replace(options, only_extension=None)

        session = self.session
        session.reset(config)
        found = await self.discovery.enumerate(root_paths, options, cancel)
        session.failed_paths.extend(found.failed_paths)

        if config.find_json_files:
            worker = self._scan_json
        elif config.find_blank_pages:
            worker = self._scan_blank
        else:
            worker = self._scan_document

        async def guarded(descriptor: FileDescriptor) -> Optional[FileResult]:
            if cancel is not None and cancel.is_set():
                return None
            session.files_scanned += 1
            return await worker(descriptor, config)

        results = await run_bounded(found.files, guarded, self.settings.scan_concurrency)
        session.results = [r for r in results if r is not None]
        session.matches_found = sum(len(r.matches) for r in session.results)

        summary = ScanSummary(
            config=config,
            files_scanned=session.files_scanned,
            matches_found=session.matches_found,
            files_affected=len(session.results),
            element_count=sum(r.element_count for r in session.results),
            failed_paths=list(session.failed_paths),
        )
        logger.info(summary.message)
        return summary

    async def _scan_json(
        self, descriptor: FileDescriptor, config: SearchConfiguration
    ) -> Optional[FileResult]:
        fetched = await self.store.read(descriptor.path)
        if not fetched.success:
            self.session.failed_paths.append(descriptor.path)
            return None
        text = normalize_json_text(fetched.content)
        try:
            json.loads(text)
        except ValueError:
            return None

        if not config.search_term:
            matches = [
                MatchRecord(
                    match_id=0,
                    matched_text="JSON file",
                    byte_offset=0,
                    line_number=1,
                    sequence_on_line=1,
                    context="Detected JSON content",
                    config_fingerprint=config.fingerprint(),
                )
            ]
        else:
            matches = self.matcher.find_in_text(text, config)
            if not matches:
                return None
        return FileResult(file=descriptor, matches=matches, is_json_file=True)

    async def _scan_blank(
        self, descriptor: FileDescriptor, config: SearchConfiguration
    ) -> Optional[FileResult]:
        fetched = await self.store.read(descriptor.path)
        if not fetched.success:
            # a failed fetch says nothing about the page being empty
            self.session.failed_paths.append(descriptor.path)
            return None
        if not is_page_empty(fetched.content):
            return None
        match = MatchRecord(
            match_id=0,
            matched_text="Empty Page",
            byte_offset=0,
            line_number=1,
            sequence_on_line=1,
            context="Page has no source content",
            config_fingerprint=config.fingerprint(),
        )
        return FileResult(
            file=descriptor,
            matches=[match],
            original_content=fetched.content,
            updated_content=fetched.content,
            is_blank_page=True,
        )

    async def _scan_document(
        self, descriptor: FileDescriptor, config: SearchConfiguration
    ) -> Optional[FileResult]:
        fetched = await self.store.read(descriptor.path)
        if not fetched.success:
            self.session.failed_paths.append(descriptor.path)
            return None
        if not fetched.content:
            return None
        matches = self.matcher.find_matches(fetched.content, config)
        if not matches:
            return None
        result = FileResult(
            file=descriptor,
            matches=matches,
            original_content=fetched.content,
            updated_content=fetched.content,
            element_count=len(matches) if config.element_only else 0,
        )
        if not config.element_only and (config.replace_term or config.replace_empty):
            result.updated_content = self.replacer.apply(fetched.content, matches, config)
        return result

    # replace

    async def execute_replace(
        self,
        replace_term: Optional[str] = None,
        replace_empty: Optional[bool] = None,
        label: str = DEFAULT_LABEL,
    ) -> ReplaceSummary:
        """Back up, rewrite and save every selected file.

        A file whose backup cannot be created is skipped and left untouched.
        """
        session = self.session
        config = session.config
        if replace_term is not None:
            config = replace(config, replace_term=replace_term)
        if replace_empty is not None:
            config = replace(config, replace_empty=replace_empty)
        config.validate_for_replace()

        selected = session.selected_results()
        if not selected:
            raise ConfigurationError("Please select at least one file to replace")
        fingerprint = config.fingerprint()
        for result in selected:
            if any(m.config_fingerprint != fingerprint for m in result.selected_matches):
                raise ConfigurationError(
                    f"Matches in {result.file.path} were detected with a different "
                    "search configuration; run the scan again before replacing"
                )
        session.config = config

        self.store.invalidate_all()

        async def replace_one(result: FileResult) -> FileOutcome:
            path = result.file.path
            updated = self.replacer.apply(result.original_content, result.matches, config)
            if updated == result.original_content:
                return FileOutcome(
                    path, success=False, reason="No selected match could be applied", unchanged=True
                )
            try:
                await self._save_with_backup(path, updated, label)
            except BackupError as exc:
                return FileOutcome(path, success=False, reason=str(exc), skipped=True)
            except WriteError as exc:
                return FileOutcome(path, success=False, reason=str(exc), backup_created=True)
            result.updated_content = updated
            return FileOutcome(path, success=True, backup_created=True)

        outcomes = await run_bounded(selected, replace_one, self.settings.write_concurrency)
        self.store.invalidate_all()
        summary = ReplaceSummary(outcomes)
        logger.info(summary.message)
        return summary

    async def _save_with_backup(self, path: str, content: str, label: str) -> None:
        # never write without a backup of the current remote state
        if await self.versions.backup(path, label) is None:
            raise BackupError("Backup could not be created")
        if not await self.store.write(path, content):
            raise WriteError("Write failed")

    # revert

    async def revert_selected(self) -> RevertSummary:
        selected = self.session.selected_results()
        if not selected:
            raise ConfigurationError("Please select files to revert")
        self.store.invalidate_all()
        outcomes = await run_bounded(
            [r.file.path for r in selected],
            self.versions.revert_to_latest,
            self.settings.write_concurrency,
        )
        self.store.invalidate_all()
        summary = RevertSummary(outcomes)
        logger.info(summary.message)
        return summary

    # lifecycle

    async def bulk(self, operation: BulkOperation) -> BulkSummary:
        files = [r.file for r in self.session.selected_results()]
        return await self.bulk_ops.transition(operation, files)

    # export

    async def export(self, store: "RunStore") -> List[str]:
        """Write each selected file's content, one tag per line, as run artifacts."""
        selected = self.session.selected_results()
        if not selected:
            raise ConfigurationError("No files selected")
        written = []
        prefix = self.settings.site_prefix
        for result in selected:
            raw = result.updated_content or result.original_content
            relative = result.file.path
            if relative.startswith(prefix):
                relative = relative[len(prefix):]
            name = f"export/{relative.lstrip('/')}"
            store.save_artifact(name, format_html(raw).text + "\n")
            written.append(name)
        logger.info("Exported %d files", len(written))
        return written
