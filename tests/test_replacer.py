"""Tests for selective replacement."""
import pytest

from findreplace.engine.matcher import MatchEngine
from findreplace.engine.replacer import ReplaceEngine
from findreplace.errors import ConfigurationError
from findreplace.models import MatchRecord, SearchConfiguration, SearchType, TargetScope


def detect_and_apply(content, deselect=(), **config_values):
    config = SearchConfiguration(**config_values)
    matches = MatchEngine().find_matches(content, config)
    for match in matches:
        if match.match_id in deselect:
            match.selected = False
    return ReplaceEngine().apply(content, matches, config)


class TestSelectiveReplace:
    def test_deselected_middle_match_is_kept(self):
        out = detect_and_apply(
            "<p>cat cat cat</p>", deselect={1}, search_term="cat", replace_term="dog"
        )
        assert out == "<p>dog cat dog</p>"

    def test_nothing_selected_returns_input(self):
        content = "<p>Hello World</p><p>Hello Moon</p>"
        out = detect_and_apply(content, deselect={0, 1}, search_term="Hello", replace_term="Bye")
        assert out is content

    def test_only_selected_line_changes(self):
        out = detect_and_apply(
            "<p>Hello World</p><p>Hello Moon</p>",
            deselect={1},
            search_term="Hello",
            replace_term="Bye",
        )
        assert out == "<p>Bye World</p><p>Hello Moon</p>"

    def test_untouched_bytes_survive_formatting(self):
        content = '<div  class="x">\n   <p>Hello   World</p>\n\t</div>\n'
        out = detect_and_apply(content, search_term="Hello", replace_term="Bye")
        assert out == content.replace("Hello", "Bye")

    def test_regex_backreferences(self):
        out = detect_and_apply(
            "<p>2024-01-05</p>",
            search_term=r"(\d{4})-(\d{2})",
            replace_term="$2/$1",
            search_type=SearchType.REGEX,
        )
        assert out == "<p>01/2024-05</p>"

    def test_replace_empty_writes_nbsp_entity(self):
        out = detect_and_apply(
            "<p>Remove</p>", search_term="Remove", replace_empty=True
        )
        assert out == "<p>&nbsp;</p>"

    def test_urls_are_not_rewritten_when_excluded(self):
        content = '<p><a href="/old">old link</a> old</p>'
        out = detect_and_apply(content, search_term="old", replace_term="new", exclude_urls=True)
        assert out == '<p><a href="/old">old link</a> new</p>'


class TestScopedReplace:
    def test_replacement_stays_inside_scope(self):
        content = (
            "<header>Hello</header><main><p>Hello there</p>"
            '<div class="metadata"><div>Hello meta</div></div></main>'
        )
        out = detect_and_apply(
            content,
            search_term="Hello",
            replace_term="Hi",
            target_scope=TargetScope.MAIN_CONTENT,
        )
        assert "<p>Hi there</p>" in out
        assert "<header>Hello</header>" in out
        assert "Hello meta" in out

    def test_blocks_scope(self):
        content = '<div class="hero"><p>Sale now</p></div><p>Sale elsewhere</p>'
        out = detect_and_apply(
            content, search_term="Sale", replace_term="Deal", target_scope=TargetScope.BLOCKS
        )
        assert "Deal now" in out
        assert "Sale elsewhere" in out

    def test_unparseable_selector_returns_input(self):
        config = SearchConfiguration(
            search_term="Hello",
            replace_term="Bye",
            target_scope=TargetScope.CUSTOM,
            custom_selector="div[",
        )
        record = MatchRecord(
            match_id=0,
            matched_text="Hello",
            byte_offset=0,
            line_number=1,
            sequence_on_line=1,
            context="Hello",
            config_fingerprint=config.fingerprint(),
        )
        assert ReplaceEngine().apply("<p>Hello</p>", [record], config) == "<p>Hello</p>"

    def test_no_effective_edit_keeps_markup_byte_for_byte(self):
        content = "<main><p>Hello</p></main><footer a='1'>x&nbsp;y<br></footer>"
        out = detect_and_apply(
            content,
            search_term="hello",
            replace_term="Hello",
            target_scope=TargetScope.MAIN_CONTENT,
        )
        assert out == content

    def test_match_across_text_nodes_is_not_rewritten(self):
        content = "<main><p>Hello</p><p>World</p></main><footer a='1'>x&nbsp;y<br></footer>"
        config = SearchConfiguration(
            search_term=r"Hello\sWorld",
            replace_term="Bye",
            search_type=SearchType.REGEX,
            target_scope=TargetScope.MAIN_CONTENT,
        )
        record = MatchRecord(
            match_id=0,
            matched_text="Hello\nWorld",
            byte_offset=0,
            line_number=1,
            sequence_on_line=1,
            context="Hello\nWorld",
            config_fingerprint=config.fingerprint(),
        )
        assert ReplaceEngine().apply(content, [record], config) == content


class TestHtmlBlockReplace:
    def test_selected_blocks_only(self):
        content = "<h2>A</h2><p>x</p><h2>A</h2>\n<p>x</p>"
        out = detect_and_apply(
            content,
            deselect={0},
            search_term="<h2>A</h2><p>x</p>",
            replace_term="<h2>B</h2>",
            html_block_mode=True,
        )
        assert out == "<h2>A</h2><p>x</p><h2>B</h2>"

    def test_empty_replacement_removes_block(self):
        out = detect_and_apply(
            "<div><h2>A</h2><p>x</p></div>",
            search_term="<h2>A</h2><p>x</p>",
            html_block_mode=True,
            replace_empty=True,
        )
        assert out == "<div></div>"


class TestConfigurationGuard:
    def test_changed_configuration_is_rejected(self):
        content = "<p>Hello</p>"
        detected_with = SearchConfiguration(search_term="Hello")
        matches = MatchEngine().find_matches(content, detected_with)
        replaced_with = SearchConfiguration(
            search_term="Hello", replace_term="Bye", case_sensitive=True
        )
        with pytest.raises(ConfigurationError):
            ReplaceEngine().apply(content, matches, replaced_with)

    def test_replace_term_may_change_after_scan(self):
        content = "<p>Hello</p>"
        matches = MatchEngine().find_matches(content, SearchConfiguration(search_term="Hello"))
        config = SearchConfiguration(search_term="Hello", replace_term="Bye")
        assert ReplaceEngine().apply(content, matches, config) == "<p>Bye</p>"
