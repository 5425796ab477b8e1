from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional, Union

from findreplace.models import (
    BulkSummary,
    FileResult,
    ReplaceSummary,
    RevertSummary,
)
from findreplace.session import ScanSession
from findreplace.utils import write_text

Summary = Union[ReplaceSummary, RevertSummary, BulkSummary]

CONTEXT_CHARS = 80


class ReportWriter:
    def to_json(self, session: ScanSession) -> str:
        payload = {
            "config": session.config.to_dict(),
            "files_scanned": session.files_scanned,
            "matches_found": session.matches_found,
            "failed_paths": session.failed_paths,
            "results": [
                {
                    "path": r.file.path,
                    "selection": r.selection.value,
                    "is_blank_page": r.is_blank_page,
                    "is_json_file": r.is_json_file,
                    "matches": [asdict(m) for m in r.matches],
                }
                for r in session.results
            ],
        }
        return json.dumps(payload, indent=2, ensure_ascii=True)

    def to_markdown(
        self,
        session: ScanSession,
        results: Optional[List[FileResult]] = None,
        summaries: Optional[List[Summary]] = None,
    ) -> str:
        config = session.config
        lines = ["# Find & Replace Report", ""]
        lines.append(f"**Search:** `{config.search_term}` ({config.search_type.value})")
        if config.replace_term or config.replace_empty:
            shown = "(empty)" if config.replace_empty else config.replace_term
            lines.append(f"**Replace:** `{shown}`")
        lines.append(f"**Scope:** {config.target_scope.label}")
        lines.append(f"**Files scanned:** {session.files_scanned}")
        lines.append(f"**Matches:** {session.matches_found} in {len(session.results)} files")
        lines.append("")

        shown_results = session.results if results is None else results
        if not shown_results:
            lines.append("## Results\n\nNo files matched.\n")
        else:
            lines.append("## Results")
            lines.append("")
            for result in shown_results:
                lines.append(f"### {result.file.path} [{result.selection.value}]")
                for m in result.matches:
                    mark = "x" if m.selected else " "
                    context = " ".join(m.context.split())[:CONTEXT_CHARS]
                    lines.append(
                        f"- [{mark}] #{m.match_id} L{m.line_number}#{m.sequence_on_line} "
                        f'"{m.matched_text}" … {context}'
                    )
                lines.append("")

        if session.failed_paths:
            lines.append("## Unreadable")
            lines.append("")
            for path in session.failed_paths:
                lines.append(f"- {path}")
            lines.append("")

        if summaries:
            lines.append("## Operations")
            lines.append("")
            for summary in summaries:
                lines.append(f"- {summary.message}")
            lines.append("")

        return "\n".join(lines)

    def write(self, path: Path, content: str) -> None:
        write_text(path, content)
