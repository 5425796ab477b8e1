from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from findreplace.client.admin import AdminClient
from findreplace.config import Settings
from findreplace.errors import FindReplaceError
from findreplace.models import BulkOperation, SearchConfiguration, SearchType, TargetScope
from findreplace.report.writer import ReportWriter
from findreplace.scanner.discovery import DiscoveryOptions
from findreplace.service import FindReplaceService
from findreplace.session import ScanSession
from findreplace.storage.session_store import SESSION_FILE, RunStore

logger = logging.getLogger("findreplace")

app = typer.Typer(no_args_is_help=True)

T = TypeVar("T")


@app.callback()
def _main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    config: Optional[Path] = typer.Option(None, "--config", help="Settings YAML file"),
    org_site: Optional[str] = typer.Option(None, "--org-site", help="/org/site to work on"),
) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    try:
        settings = Settings.load(config)
        if org_site:
            settings = settings.with_org_site(org_site)
    except FindReplaceError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    ctx.obj = settings


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _open_store(settings: Settings, run_id: Optional[str]) -> RunStore:
    if run_id:
        if not (settings.workdir / "runs" / run_id / SESSION_FILE).exists():
            typer.echo(f"No saved scan for run {run_id}")
            raise typer.Exit(code=1)
        return RunStore(settings.workdir, run_id)
    try:
        return RunStore.latest(settings.workdir)
    except FileNotFoundError as exc:
        typer.echo(f"{exc}; run 'findreplace scan' first")
        raise typer.Exit(code=1)


def _run(
    settings: Settings,
    session: ScanSession,
    action: Callable[[FindReplaceService], Awaitable[T]],
) -> T:
    async def runner() -> T:
        async with AdminClient(settings) as client:
            return await action(FindReplaceService(client, session, settings))

    try:
        return asyncio.run(runner())
    except FindReplaceError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)


@app.command()
def scan(
    ctx: typer.Context,
    search: str = typer.Argument("", help="Text, word or pattern to search for"),
    replace: str = typer.Option("", "--replace", "-r", help="Replacement preview text"),
    search_type: SearchType = typer.Option(SearchType.CONTAINS, "--type", "-t"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive"),
    html_block: bool = typer.Option(False, "--html-block", help="Match raw HTML fragments"),
    scope: TargetScope = typer.Option(TargetScope.ALL, "--scope"),
    selector: str = typer.Option("", "--selector", help="CSS selector for --scope custom"),
    exclude_urls: bool = typer.Option(False, "--exclude-urls"),
    blank_pages: bool = typer.Option(False, "--blank-pages", help="Find pages with no content"),
    json_files: bool = typer.Option(False, "--json-files", help="Scan JSON sources"),
    paths: Optional[List[str]] = typer.Option(None, "--path", "-p", help="Root folder (repeatable)"),
    recurse: bool = typer.Option(True, "--recurse/--no-recurse"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-x", help="Path fragment to skip"),
    since: Optional[datetime] = typer.Option(None, "--since", help="Only files modified after"),
) -> None:
    """Discover documents and record every match."""
    settings = _settings(ctx)
    config = SearchConfiguration(
        search_term=search,
        replace_term=replace,
        search_type=search_type,
        case_sensitive=case_sensitive,
        html_block_mode=html_block,
        target_scope=scope,
        custom_selector=selector,
        exclude_urls=exclude_urls,
        find_blank_pages=blank_pages,
        find_json_files=json_files,
    )
    options = DiscoveryOptions(
        recurse_subfolders=recurse,
        exclude_path_fragments=list(exclude or []),
        modified_since=since,
    )
    session = ScanSession(page_size=settings.page_size)
    summary = _run(settings, session, lambda svc: svc.scan(config, list(paths or []), options))

    store = RunStore.create(settings.workdir)
    store.save_session(session)
    typer.echo(summary.message)
    if summary.failed_paths:
        typer.echo(f"unreadable: {len(summary.failed_paths)}")
    typer.echo(f"run_id: {store.run_id}")


@app.command()
def results(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None, help="Saved scan (default: latest)"),
    filter_text: str = typer.Option("", "--filter", "-f"),
    page: int = typer.Option(1, "--page"),
) -> None:
    """List scan results page by page."""
    store = _open_store(_settings(ctx), run_id)
    session = store.load_session()
    session.set_filter(filter_text)
    session.go_to_page(page)
    for result in session.page_results():
        typer.echo(f"{result.file.path} [{result.selection.value}]")
        for m in result.matches:
            mark = "x" if m.selected else " "
            typer.echo(
                f"  [{mark}] {m.match_id:>3} L{m.line_number}#{m.sequence_on_line} {m.matched_text!r}"
            )
    total = len(session.filtered_results())
    typer.echo(f"page {session.page}/{session.total_pages} ({total} files)")
    store.save_session(session)


@app.command()
def select(
    ctx: typer.Context,
    path: Optional[str] = typer.Argument(None, help="Result path (omit for every file)"),
    match_ids: Optional[List[int]] = typer.Option(None, "--match", "-m", help="Match id (repeatable)"),
    deselect: bool = typer.Option(False, "--deselect", help="Clear instead of set"),
    run_id: Optional[str] = typer.Option(None),
) -> None:
    """Change which files and matches are selected."""
    store = _open_store(_settings(ctx), run_id)
    session = store.load_session()
    try:
        if path is None:
            session.select_all(not deselect)
        elif match_ids:
            for match_id in match_ids:
                session.toggle_match(path, match_id, not deselect)
        else:
            session.select_file(path, not deselect)
    except FindReplaceError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    store.save_session(session)
    typer.echo(f"selected files: {len(session.selected_results())}/{len(session.results)}")


@app.command()
def replace(
    ctx: typer.Context,
    replace_term: Optional[str] = typer.Option(None, "--with", "-w", help="Replacement text"),
    replace_empty: bool = typer.Option(False, "--replace-empty", help="Empty matched text"),
    label: Optional[str] = typer.Option(None, help="Backup version label"),
    run_id: Optional[str] = typer.Option(None),
) -> None:
    """Back up and rewrite the selected matches."""
    settings = _settings(ctx)
    store = _open_store(settings, run_id)
    session = store.load_session()

    def action(svc: FindReplaceService):
        kwargs = {"replace_term": replace_term, "replace_empty": replace_empty or None}
        if label:
            kwargs["label"] = label
        return svc.execute_replace(**kwargs)

    summary = _run(settings, session, action)
    store.save_session(session)
    store.save_artifact("replace.md", ReportWriter().to_markdown(session, summaries=[summary]))
    typer.echo(summary.message)
    for outcome in summary.outcomes:
        if not outcome.success:
            logger.warning("%s: %s", outcome.path, outcome.reason)
    if summary.failed_paths:
        raise typer.Exit(code=1)


@app.command()
def revert(ctx: typer.Context, run_id: Optional[str] = typer.Option(None)) -> None:
    """Restore the selected files to their most recent labelled version."""
    settings = _settings(ctx)
    store = _open_store(settings, run_id)
    session = store.load_session()
    summary = _run(settings, session, lambda svc: svc.revert_selected())
    typer.echo(summary.message)
    if summary.failed_paths:
        raise typer.Exit(code=1)


@app.command()
def bulk(
    ctx: typer.Context,
    operation: BulkOperation = typer.Argument(..., help="preview|publish|unpublish|copy-urls"),
    run_id: Optional[str] = typer.Option(None),
) -> None:
    """Preview, publish, unpublish or list URLs of the selected files."""
    settings = _settings(ctx)
    store = _open_store(settings, run_id)
    session = store.load_session()
    summary = _run(settings, session, lambda svc: svc.bulk(operation))
    for url in summary.urls:
        typer.echo(url)
    typer.echo(summary.message)
    if not summary.ok:
        raise typer.Exit(code=1)


@app.command()
def export(ctx: typer.Context, run_id: Optional[str] = typer.Option(None)) -> None:
    """Save the selected files' content, one tag per line, under the run."""
    settings = _settings(ctx)
    store = _open_store(settings, run_id)
    session = store.load_session()
    written = _run(settings, session, lambda svc: svc.export(store))
    typer.echo(f"exported {len(written)} files to {store.artifacts_dir / 'export'}")


@app.command()
def report(
    ctx: typer.Context,
    run_id: Optional[str] = typer.Option(None),
    format: str = typer.Option("md", help="md|json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
) -> None:
    """Render a saved scan."""
    store = _open_store(_settings(ctx), run_id)
    session = store.load_session()
    writer = ReportWriter()
    if format == "json":
        content = writer.to_json(session)
    elif format == "md":
        content = writer.to_markdown(session)
    else:
        typer.echo("format must be md or json")
        raise typer.Exit(code=1)
    if output:
        writer.write(output, content)
        typer.echo(f"report written to {output}")
        return
    typer.echo(content)
