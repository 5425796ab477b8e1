"""Tests for the scan session and its persistence."""
import pytest

from findreplace.errors import ConfigurationError
from findreplace.models import (
    FileDescriptor,
    FileResult,
    MatchRecord,
    SearchConfiguration,
    Selection,
)
from findreplace.session import ScanSession
from findreplace.storage.session_store import RunStore


def result(path, *texts):
    matches = [
        MatchRecord(
            match_id=i,
            matched_text=text,
            byte_offset=i,
            line_number=1,
            sequence_on_line=i + 1,
            context=f"... {text} ...",
        )
        for i, text in enumerate(texts)
    ]
    return FileResult(
        file=FileDescriptor(path=path, ext="html", last_modified=1, name=path),
        matches=matches,
        original_content="<p>x</p>",
    )


@pytest.fixture
def session():
    s = ScanSession(config=SearchConfiguration(search_term="x"), page_size=2)
    s.results = [
        result("/org/site/a.html", "alpha"),
        result("/org/site/b.html", "beta", "beta"),
        result("/org/site/c.html", "gamma"),
    ]
    return s


class TestSelection:
    def test_toggle_match_makes_partial(self, session):
        assert session.toggle_match("/org/site/b.html", 1) is False
        assert session.result_for("/org/site/b.html").selection is Selection.PARTIAL

    def test_select_file(self, session):
        session.select_file("/org/site/a.html", False)
        assert [r.file.path for r in session.selected_results()] == [
            "/org/site/b.html",
            "/org/site/c.html",
        ]

    def test_unknown_match(self, session):
        with pytest.raises(ConfigurationError):
            session.toggle_match("/org/site/a.html", 9, True)

    def test_result_without_matches_keeps_own_selection(self):
        blank = FileResult(file=FileDescriptor("/p.html", "html", 1, "p"))
        assert blank.selected
        blank.set_selected(False)
        assert blank.selection is Selection.NONE


class TestView:
    def test_filter_over_path_and_match_text(self, session):
        session.set_filter("BETA")
        assert [r.file.path for r in session.filtered_results()] == ["/org/site/b.html"]
        session.set_filter("c.html")
        assert len(session.filtered_results()) == 1

    def test_pagination(self, session):
        assert session.total_pages == 2
        session.go_to_page(5)
        assert session.page == 2
        assert [r.file.path for r in session.page_results()] == ["/org/site/c.html"]

    def test_reset(self, session):
        session.content_cache["k"] = "v"
        session.reset(SearchConfiguration(search_term="y"))
        assert session.results == []
        assert session.content_cache == {}
        assert session.config.search_term == "y"


class TestRunStore:
    def test_session_survives_save_and_load(self, session, tmp_path):
        session.toggle_match("/org/site/b.html", 0, False)
        store = RunStore(tmp_path, "20240101T000000")
        store.save_session(session)

        loaded = RunStore.latest(tmp_path).load_session()

        assert loaded.config == session.config
        assert loaded.page_size == 2
        assert [m.selected for m in loaded.result_for("/org/site/b.html").matches] == [False, True]
        assert loaded.results[0].file == session.results[0].file

    def test_latest_without_runs(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RunStore.latest(tmp_path)

    def test_back_to_back_runs_get_distinct_ids(self, session, tmp_path):
        first = RunStore.create(tmp_path)
        first.save_session(session)
        second = RunStore.create(tmp_path)
        second.save_session(session)

        assert first.run_id != second.run_id
        assert RunStore.latest(tmp_path).run_id == second.run_id
