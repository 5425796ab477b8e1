from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from findreplace.errors import ConfigurationError
from findreplace.utils import file_name, text_sha256

NBSP_ENTITY = "&nbsp;"
NBSP_CHAR = "\u00a0"
REPLACEMENT_FIELDS = ("replace_term", "replace_empty")


class SearchType(str, Enum):
    CONTAINS = "contains"
    EXACT = "exact"
    REGEX = "regex"


class TargetScope(str, Enum):
    ALL = "all"
    PAGE_METADATA = "page-metadata"
    SECTION_METADATA = "section-metadata"
    BLOCKS = "blocks"
    MAIN_CONTENT = "main-content"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return {
            "all": "All Content",
            "page-metadata": "Page Metadata",
            "section-metadata": "Section Metadata",
            "blocks": "Blocks",
            "main-content": "Main Content",
            "custom": "Custom Selector",
        }[self.value]


class Selection(str, Enum):
    ALL = "all"
    NONE = "none"
    PARTIAL = "partial"


class BulkOperation(str, Enum):
    PREVIEW = "preview"
    PUBLISH = "publish"
    UNPUBLISH = "unpublish"
    COPY_URLS = "copy-urls"


@dataclass(frozen=True)
class FileDescriptor:
    path: str
    ext: str
    last_modified: Optional[int]
    name: str

    @classmethod
    def from_listing(cls, item: Dict[str, Any]) -> "FileDescriptor":
        return cls(
            path=item["path"],
            ext=item.get("ext") or "",
            last_modified=item.get("lastModified"),
            name=item.get("name") or file_name(item["path"]),
        )


@dataclass(frozen=True)
class SearchConfiguration:
    search_term: str = ""
    replace_term: str = ""
    search_type: SearchType = SearchType.CONTAINS
    case_sensitive: bool = False
    html_block_mode: bool = False
    target_scope: TargetScope = TargetScope.ALL
    custom_selector: str = ""
    exclude_urls: bool = False
    find_blank_pages: bool = False
    find_json_files: bool = False
    replace_empty: bool = False

    @property
    def element_only(self) -> bool:
        return (
            self.target_scope is TargetScope.CUSTOM
            and not self.search_term
            and bool(self.custom_selector)
        )

    def validate_for_scan(self) -> None:
        if (
            not self.search_term
            and self.target_scope is not TargetScope.CUSTOM
            and not self.find_blank_pages
            and not self.find_json_files
        ):
            raise ConfigurationError("Please enter a search term")
        if self.target_scope is TargetScope.CUSTOM and not self.custom_selector:
            raise ConfigurationError(
                "Please enter a CSS selector when using Custom Selector mode"
            )
        if self.search_type is SearchType.REGEX and self.search_term:
            try:
                re.compile(self.search_term)
            except re.error as exc:
                raise ConfigurationError(
                    f"Invalid regular expression '{self.search_term}': {exc}"
                ) from exc

    def validate_for_replace(self) -> None:
        if self.find_json_files:
            raise ConfigurationError("Replace is disabled in JSON search-only mode.")
        if self.find_blank_pages:
            raise ConfigurationError("Replace is disabled in blank page search mode.")
        if not self.search_term:
            raise ConfigurationError("Search term is required")
        if not self.replace_empty and not self.replace_term:
            raise ConfigurationError(
                "Replace term is required (or use --replace-empty to remove text)"
            )

    def replacement_text(self, text_nodes: bool = False) -> str:
        """Text written in place of a match.

        Emptying keeps a non-breaking space so required elements do not
        collapse; whole HTML blocks are removed outright.
        """
        if not self.replace_empty:
            return self.replace_term
        if self.html_block_mode:
            return ""
        return NBSP_CHAR if text_nodes else NBSP_ENTITY

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["search_type"] = self.search_type.value
        payload["target_scope"] = self.target_scope.value
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchConfiguration":
        values = dict(data)
        values["search_type"] = SearchType(values.get("search_type", "contains"))
        values["target_scope"] = TargetScope(values.get("target_scope", "all"))
        return cls(**values)

    def fingerprint(self) -> str:
        """Hash of every field that influences detection.

        The replacement text is excluded so it can be supplied after the scan.
        """
        payload = self.to_dict()
        for key in REPLACEMENT_FIELDS:
            payload.pop(key)
        return text_sha256(json.dumps(payload, sort_keys=True))


@dataclass
class MatchRecord:
    match_id: int
    matched_text: str
    byte_offset: int
    line_number: int
    sequence_on_line: int
    context: str
    selected: bool = True
    config_fingerprint: str = ""

    @property
    def identity(self) -> tuple[str, int, int]:
        return (self.matched_text, self.line_number, self.sequence_on_line)


@dataclass
class FileResult:
    file: FileDescriptor
    matches: List[MatchRecord] = field(default_factory=list)
    original_content: str = ""
    updated_content: str = ""
    expanded: bool = False
    is_blank_page: bool = False
    is_json_file: bool = False
    element_count: int = 0
    # selection state of results without matches (blank pages, JSON listings)
    chosen: bool = True

    @property
    def selection(self) -> Selection:
        if not self.matches:
            return Selection.ALL if self.chosen else Selection.NONE
        chosen = sum(1 for m in self.matches if m.selected)
        if chosen == 0:
            return Selection.NONE
        if chosen == len(self.matches):
            return Selection.ALL
        return Selection.PARTIAL

    @property
    def selected(self) -> bool:
        return self.selection is not Selection.NONE

    @property
    def selected_matches(self) -> List[MatchRecord]:
        return [m for m in self.matches if m.selected]

    def set_selected(self, selected: bool) -> None:
        self.chosen = selected
        for match in self.matches:
            match.selected = selected


@dataclass(frozen=True)
class VersionRecord:
    url: str
    label: str
    timestamp: Optional[int]


@dataclass
class ReadResult:
    success: bool
    content: str = ""
    error: Optional[str] = None


@dataclass
class FileOutcome:
    path: str
    success: bool
    reason: Optional[str] = None
    backup_created: bool = False
    skipped: bool = False
    # nothing to write, so no backup was attempted
    unchanged: bool = False


@dataclass
class ScanSummary:
    config: SearchConfiguration
    files_scanned: int
    matches_found: int
    files_affected: int
    element_count: int = 0
    failed_paths: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        config = self.config
        if config.find_blank_pages:
            return f"Found {self.files_affected} empty pages (no source content)"
        if config.find_json_files:
            if not config.search_term:
                return f"Found {self.files_affected} JSON files"
            return (
                f"Found {self.matches_found} matches in "
                f"{self.files_affected} JSON files"
            )
        if config.element_only:
            return (
                f"Found {self.element_count} {config.custom_selector} elements "
                f"in {self.files_affected} files"
            )
        if self.files_affected == 0 and self.failed_paths:
            return (
                f"No matches found; {len(self.failed_paths)} locations "
                "could not be read"
            )
        return (
            f"Found {self.matches_found} matches in {self.files_affected} files "
            f"(searching: {config.target_scope.label})"
        )


@dataclass
class ReplaceSummary:
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def backup_count(self) -> int:
        return sum(1 for o in self.outcomes if o.backup_created)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed_paths(self) -> List[str]:
        return [o.path for o in self.outcomes if not o.success and not o.unchanged]

    @property
    def unchanged_count(self) -> int:
        return sum(1 for o in self.outcomes if o.unchanged)

    @property
    def message(self) -> str:
        attempted = self.total - self.unchanged_count
        if attempted == 0:
            return f"No files changed: {self.unchanged_count} files unchanged."
        if self.skipped_count:
            text = (
                f"Updated {self.success_count}/{self.total} files. "
                f"Skipped {self.skipped_count} files due to version creation "
                f"failures. Created {self.backup_count} backup versions."
            )
        elif self.backup_count == attempted:
            text = (
                f"Updated {self.success_count}/{self.total} files successfully! "
                f"Created {self.backup_count} backup versions."
            )
        else:
            text = (
                f"Updated {self.success_count}/{self.total} files. "
                "Warning: Some backup versions could not be created."
            )
        if self.unchanged_count:
            text += f" {self.unchanged_count} files unchanged."
        return text


@dataclass
class RevertSummary:
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_paths(self) -> List[str]:
        return [o.path for o in self.outcomes if not o.success]

    @property
    def message(self) -> str:
        if self.failed_paths:
            names = ", ".join(file_name(p) for p in self.failed_paths)
            return (
                f"Reverted {self.success_count}/{self.total} files. Failed: {names}"
            )
        return f"Successfully reverted {self.success_count} files to most recent versions"


@dataclass
class BulkSummary:
    operation: BulkOperation
    total: int
    succeeded: int = 0
    failed_paths: List[str] = field(default_factory=list)
    job_id: Optional[str] = None
    urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_paths

    @property
    def message(self) -> str:
        op = self.operation.value
        if self.operation is BulkOperation.COPY_URLS:
            plural = "" if len(self.urls) == 1 else "s"
            return f"Copied {len(self.urls)} URL{plural}"
        if self.error:
            return f"{op} failed: {self.error}"
        if self.operation is BulkOperation.UNPUBLISH:
            text = f"Unpublished {self.succeeded}/{self.total} files"
            if self.failed_paths:
                text += f". Failed: {', '.join(self.failed_paths)}"
            return text
        if self.job_id:
            return (
                f"Bulk {op} job initiated for {self.total} files. "
                f"Job ID: {self.job_id}"
            )
        if self.total == 1:
            return f"Successfully completed {op} for 1 file"
        return f"Bulk {op} completed for {self.total} files"
