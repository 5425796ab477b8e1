from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from findreplace.models import FileDescriptor, FileResult, MatchRecord, SearchConfiguration
from findreplace.session import ScanSession
from findreplace.utils import ensure_dir, utc_now_iso, write_text

SESSION_FILE = "session.json"


def new_run_id() -> str:
    # sorts by time, unique per microsecond
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


class RunStore:
    """Keeps a scan session and its artifacts under ``{workdir}/runs/{run_id}``."""

    def __init__(self, workdir: Path, run_id: str) -> None:
        self.workdir = workdir
        self.run_id = run_id
        self.base_dir = workdir / "runs" / run_id
        self.artifacts_dir = self.base_dir / "artifacts"
        ensure_dir(self.artifacts_dir)

    @classmethod
    def create(cls, workdir: Path) -> "RunStore":
        """Open a store under a run id no earlier run has used."""
        base = run_id = new_run_id()
        suffix = 0
        while (workdir / "runs" / run_id).exists():
            suffix += 1
            run_id = f"{base}-{suffix}"
        return cls(workdir, run_id)

    @classmethod
    def latest(cls, workdir: Path) -> "RunStore":
        runs = sorted(p.name for p in (workdir / "runs").glob("*") if (p / SESSION_FILE).exists())
        if not runs:
            raise FileNotFoundError(f"No saved scan under {workdir}")
        return cls(workdir, runs[-1])

    @property
    def session_path(self) -> Path:
        return self.base_dir / SESSION_FILE

    def save_session(self, session: ScanSession) -> None:
        payload = {
            "run_id": self.run_id,
            "saved_at": utc_now_iso(),
            "config": session.config.to_dict(),
            "files_scanned": session.files_scanned,
            "matches_found": session.matches_found,
            "failed_paths": session.failed_paths,
            "filter_text": session.filter_text,
            "page": session.page,
            "page_size": session.page_size,
            "results": [self._result_to_dict(r) for r in session.results],
        }
        write_text(self.session_path, json.dumps(payload, indent=2, ensure_ascii=True))

    def load_session(self) -> ScanSession:
        raw = json.loads(self.session_path.read_text(encoding="utf-8"))
        return ScanSession(
            config=SearchConfiguration.from_dict(raw["config"]),
            results=[self._result_from_dict(r) for r in raw.get("results", [])],
            files_scanned=raw.get("files_scanned", 0),
            matches_found=raw.get("matches_found", 0),
            failed_paths=list(raw.get("failed_paths", [])),
            filter_text=raw.get("filter_text", ""),
            page=raw.get("page", 1),
            page_size=raw.get("page_size", 10),
        )

    def save_artifact(self, name: str, content: str) -> Path:
        path = self.artifacts_dir / name
        ensure_dir(path.parent)
        write_text(path, content)
        return path

    def _result_to_dict(self, result: FileResult) -> Dict[str, Any]:
        payload = asdict(result)
        payload["file"] = asdict(result.file)
        return payload

    def _result_from_dict(self, data: Dict[str, Any]) -> FileResult:
        values = dict(data)
        values["file"] = FileDescriptor(**values["file"])
        matches: List[MatchRecord] = [MatchRecord(**m) for m in values.get("matches", [])]
        values["matches"] = matches
        return FileResult(**values)
