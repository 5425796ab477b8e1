from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from findreplace.errors import ConfigurationError
from findreplace.models import FileResult, SearchConfiguration


@dataclass
class ScanSession:
    """State shared by the commands of one scan: results, cache and view."""

    config: SearchConfiguration = field(default_factory=SearchConfiguration)
    results: List[FileResult] = field(default_factory=list)
    content_cache: Dict[str, str] = field(default_factory=dict)
    files_scanned: int = 0
    matches_found: int = 0
    failed_paths: List[str] = field(default_factory=list)
    filter_text: str = ""
    page: int = 1
    page_size: int = 10

    def reset(self, config: SearchConfiguration) -> None:
        self.config = config
        self.results = []
        self.content_cache.clear()
        self.files_scanned = 0
        self.matches_found = 0
        self.failed_paths = []
        self.filter_text = ""
        self.page = 1

    def result_for(self, path: str) -> FileResult:
        for result in self.results:
            if result.file.path == path:
                return result
        raise ConfigurationError(f"No scan result for {path}")

    def selected_results(self) -> List[FileResult]:
        return [r for r in self.results if r.selected]

    def filtered_results(self) -> List[FileResult]:
        needle = self.filter_text.strip().lower()
        if not needle:
            return list(self.results)
        return [r for r in self.results if self._matches_filter(r, needle)]

    @staticmethod
    def _matches_filter(result: FileResult, needle: str) -> bool:
        if needle in result.file.path.lower():
            return True
        return any(
            needle in m.matched_text.lower() or needle in m.context.lower()
            for m in result.matches
        )

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self.filtered_results()) / self.page_size))

    def page_results(self) -> List[FileResult]:
        start = (self.page - 1) * self.page_size
        return self.filtered_results()[start:start + self.page_size]

    def set_filter(self, text: str) -> None:
        self.filter_text = text or ""
        self.page = 1

    def go_to_page(self, page: int) -> None:
        self.page = min(max(1, page), self.total_pages)

    def toggle_match(self, path: str, match_id: int, selected: Optional[bool] = None) -> bool:
        """Flip (or set) one match's selection; returns the new state."""
        result = self.result_for(path)
        for match in result.matches:
            if match.match_id == match_id:
                match.selected = (not match.selected) if selected is None else selected
                return match.selected
        raise ConfigurationError(f"No match {match_id} in {path}")

    def select_file(self, path: str, selected: bool) -> None:
        self.result_for(path).set_selected(selected)

    def select_all(self, selected: bool) -> None:
        for result in self.results:
            result.set_selected(selected)
