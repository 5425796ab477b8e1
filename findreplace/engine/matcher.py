from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

from bs4 import BeautifulSoup, NavigableString

from findreplace.engine.normalize import (
    BARE_URL,
    STRUCTURAL_ATTRIBUTES,
    URL_REFERENCES,
    Projection,
    build_html_block_pattern,
    build_pattern,
    context_snippet,
    format_html,
)
from findreplace.engine.scopes import parse_document, scoped_text_nodes, select
from findreplace.errors import ScopeParseError
from findreplace.models import MatchRecord, SearchConfiguration, TargetScope

logger = logging.getLogger("findreplace")

CONTEXT_RADIUS = 75
HTML_BLOCK_CONTEXT_RADIUS = 150
ELEMENT_PREVIEW_CHARS = 100


@dataclass
class SearchSpace:
    """What a detection pass searched and how to write back into it.

    ``projection.origin`` indexes into ``base``. For document-level searches
    ``base`` is the raw content; for scoped searches it is the scope's text
    nodes joined one per line, with ``starts`` holding each node's offset.
    """

    projection: Projection
    base: str
    pattern: Pattern[str]
    context_radius: int = CONTEXT_RADIUS
    soup: Optional[BeautifulSoup] = None
    nodes: List[NavigableString] = field(default_factory=list)
    starts: List[int] = field(default_factory=list)

    def node_span(self, start: int, end: int) -> Optional[Tuple[int, int]]:
        """Base span of a projected match when it stays inside one text node."""
        span = self.projection.source_span(start, end, self.base)
        if span is None or not self.nodes:
            return span
        index = bisect.bisect_right(self.starts, span[0]) - 1
        if index < 0 or span[1] > self.starts[index] + len(self.nodes[index]):
            return None
        return span


Detection = Tuple[MatchRecord, "re.Match[str]"]


class MatchEngine:
    def find_matches(self, content: str, config: SearchConfiguration) -> List[MatchRecord]:
        """Locate every occurrence of the configured search in ``content``."""
        if config.element_only:
            return self.find_elements(content, config)
        if not config.search_term:
            return []
        try:
            space = self.search_space(content, config)
        except ScopeParseError as exc:
            logger.debug("Scope filtering skipped a document: %s", exc)
            return []
        return [record for record, _ in self.detect(space, config)]

    def find_in_text(self, text: str, config: SearchConfiguration) -> List[MatchRecord]:
        """Search plain text (JSON sources) without any normalisation."""
        if not config.search_term:
            return []
        space = SearchSpace(Projection.identity(text), text, build_pattern(config))
        return [record for record, _ in self.detect(space, config)]

    def find_elements(self, content: str, config: SearchConfiguration) -> List[MatchRecord]:
        """One record per element matching the custom selector."""
        selector = config.custom_selector
        try:
            elements = select(parse_document(content), selector)
        except ScopeParseError as exc:
            logger.debug("Element search skipped a document: %s", exc)
            return []
        fingerprint = config.fingerprint()
        records: List[MatchRecord] = []
        for index, element in enumerate(elements):
            text = element.get_text().strip()
            if len(text) > ELEMENT_PREVIEW_CHARS:
                text = f"{text[:ELEMENT_PREVIEW_CHARS]}..."
            records.append(
                MatchRecord(
                    match_id=index,
                    matched_text=f"Element {index + 1}: {selector}",
                    byte_offset=index,
                    line_number=index + 1,
                    sequence_on_line=1,
                    context=text,
                    config_fingerprint=fingerprint,
                )
            )
        return records

    def search_space(self, content: str, config: SearchConfiguration) -> SearchSpace:
        if config.html_block_mode:
            return SearchSpace(
                Projection.identity(content),
                content,
                build_html_block_pattern(config),
                context_radius=HTML_BLOCK_CONTEXT_RADIUS,
            )
        pattern = build_pattern(config)
        if config.target_scope is TargetScope.ALL:
            projection = format_html(content)
            if config.exclude_urls:
                projection = projection.strip(URL_REFERENCES)
            projection = projection.strip(STRUCTURAL_ATTRIBUTES)
            return SearchSpace(projection, content, pattern)

        soup = parse_document(content)
        nodes = scoped_text_nodes(soup, config)
        starts: List[int] = []
        offset = 0
        for node in nodes:
            starts.append(offset)
            offset += len(node) + 1
        base = "\n".join(str(node) for node in nodes)
        projection = Projection.identity(base)
        if config.exclude_urls:
            projection = projection.strip([BARE_URL])
        return SearchSpace(projection, base, pattern, soup=soup, nodes=nodes, starts=starts)

    def detect(self, space: SearchSpace, config: SearchConfiguration) -> List[Detection]:
        """Run the pattern over the projection, numbering lines as it goes."""
        text = space.projection.text
        fingerprint = config.fingerprint()
        detections: List[Detection] = []
        per_line: Dict[int, int] = {}
        line = 1
        scanned = 0
        for match in space.pattern.finditer(text):
            if match.end() == match.start():
                continue
            if space.soup is not None and space.node_span(match.start(), match.end()) is None:
                # text nodes are rewritten one at a time
                continue
            line += text.count("\n", scanned, match.start())
            scanned = match.start()
            per_line[line] = per_line.get(line, 0) + 1
            record = MatchRecord(
                match_id=len(detections),
                matched_text=match.group(0),
                byte_offset=match.start(),
                line_number=line,
                sequence_on_line=per_line[line],
                context=context_snippet(text, match.start(), space.context_radius),
                config_fingerprint=fingerprint,
            )
            detections.append((record, match))
        logger.debug("Detected %d matches", len(detections))
        return detections
