from __future__ import annotations

import bisect
import logging
import re
from typing import Dict, List, Optional, Tuple

from bs4 import NavigableString

from findreplace.engine.matcher import Detection, MatchEngine, SearchSpace
from findreplace.engine.normalize import expand_replacement, splice
from findreplace.errors import ConfigurationError, ScopeParseError
from findreplace.models import MatchRecord, SearchConfiguration, SearchType

logger = logging.getLogger("findreplace")

Edit = Tuple[int, int, str]


class ReplaceEngine:
    """Rewrites only the selected matches of a document.

    Detection is re-run on the original content with the same configuration;
    each selected record is paired with the re-detected occurrence carrying
    the same ``match_id`` and is rewritten only if its identity still agrees.
    """

    def __init__(self, matcher: Optional[MatchEngine] = None) -> None:
        self.matcher = matcher or MatchEngine()

    def apply(
        self,
        original: str,
        matches: List[MatchRecord],
        config: SearchConfiguration,
    ) -> str:
        selected = [m for m in matches if m.selected]
        if not selected:
            return original
        self._check_configuration(selected, config)

        try:
            space = self.matcher.search_space(original, config)
        except ScopeParseError as exc:
            logger.warning("Cannot parse content for scoped replace: %s", exc)
            return original

        detected: Dict[int, Detection] = {
            record.match_id: (record, match)
            for record, match in self.matcher.detect(space, config)
        }
        scoped = space.soup is not None
        edits: List[Edit] = []
        for wanted in selected:
            found = detected.get(wanted.match_id)
            if found is None or found[0].identity != wanted.identity:
                logger.warning(
                    "Match %r at line %d#%d no longer present; skipped",
                    wanted.matched_text,
                    wanted.line_number,
                    wanted.sequence_on_line,
                )
                continue
            _, match = found
            span = space.projection.source_span(match.start(), match.end(), space.base)
            if span is None:
                logger.warning(
                    "Match %r at line %d spans stripped markup; skipped",
                    wanted.matched_text,
                    wanted.line_number,
                )
                continue
            edits.append((span[0], span[1], self._replacement(match, config, scoped)))

        if not edits:
            return original
        if scoped:
            return self._apply_to_nodes(space, edits, original)
        return splice(original, edits)

    def _check_configuration(
        self, selected: List[MatchRecord], config: SearchConfiguration
    ) -> None:
        if config.element_only or not config.search_term:
            raise ConfigurationError("Search term is required")
        fingerprint = config.fingerprint()
        if any(m.config_fingerprint and m.config_fingerprint != fingerprint for m in selected):
            raise ConfigurationError(
                "Matches were detected with a different search configuration; "
                "run the scan again before replacing"
            )

    def _replacement(
        self, match: "re.Match[str]", config: SearchConfiguration, text_nodes: bool
    ) -> str:
        replacement = config.replacement_text(text_nodes=text_nodes)
        if config.search_type is SearchType.REGEX and "$" in replacement:
            return expand_replacement(replacement, match)
        return replacement

    def _apply_to_nodes(self, space: SearchSpace, edits: List[Edit], original: str) -> str:
        per_node: Dict[int, List[Edit]] = {}
        for start, end, text in edits:
            index = bisect.bisect_right(space.starts, start) - 1
            node_start = space.starts[index]
            if end > node_start + len(space.nodes[index]):
                logger.warning("Match crosses element text boundaries; skipped")
                continue
            per_node.setdefault(index, []).append((start - node_start, end - node_start, text))

        changed = False
        for index, node_edits in per_node.items():
            node = space.nodes[index]
            text = splice(str(node), node_edits)
            if text != str(node):
                node.replace_with(NavigableString(text))
                changed = True
        if not changed:
            # re-serialising alone would still change the markup
            return original
        return str(space.soup)
