from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.builder import ParserRejectedMarkup
from soupsieve import SelectorSyntaxError

from findreplace.errors import ScopeParseError
from findreplace.models import SearchConfiguration, TargetScope

METADATA_SELECTOR = '.metadata, table[name="metadata"], #metadata'
SECTION_METADATA_SELECTOR = (
    '.section-metadata, [class*="section"], [data-aue-type="section"]'
)
BLOCK_SELECTOR = (
    '.block, [class*="block"], .cards, .hero, .columns, .accordion, .fragment'
)

NON_CONTENT_TAGS = {"script", "style", "template"}


def parse_document(content: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(content, "html.parser")
    except ParserRejectedMarkup as exc:
        raise ScopeParseError(f"Cannot parse document: {exc}") from exc


def select(root: Tag, selector: str) -> List[Tag]:
    try:
        return list(root.select(selector))
    except SelectorSyntaxError as exc:
        raise ScopeParseError(f"Invalid selector '{selector}': {exc}") from exc


class ScopeExtractor(ABC):
    """Finds the elements a scope restricts searching and replacing to."""

    @abstractmethod
    def targets(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        raise NotImplementedError

    def excluded(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        return []


class PageMetadataScope(ScopeExtractor):
    def targets(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        return select(soup, METADATA_SELECTOR)[:1]


class SectionMetadataScope(ScopeExtractor):
    def targets(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        return select(soup, SECTION_METADATA_SELECTOR)


class BlocksScope(ScopeExtractor):
    def targets(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        return select(soup, BLOCK_SELECTOR)


class MainContentScope(ScopeExtractor):
    def targets(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        main = soup.find("main")
        return [main] if isinstance(main, Tag) else []

    def excluded(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        main = soup.find("main")
        if not isinstance(main, Tag):
            return []
        return select(main, METADATA_SELECTOR)


class CustomSelectorScope(ScopeExtractor):
    def targets(self, soup: BeautifulSoup, config: SearchConfiguration) -> List[Tag]:
        if not config.custom_selector:
            return []
        return select(soup, config.custom_selector)


SCOPE_EXTRACTORS: Dict[TargetScope, ScopeExtractor] = {
    TargetScope.PAGE_METADATA: PageMetadataScope(),
    TargetScope.SECTION_METADATA: SectionMetadataScope(),
    TargetScope.BLOCKS: BlocksScope(),
    TargetScope.MAIN_CONTENT: MainContentScope(),
    TargetScope.CUSTOM: CustomSelectorScope(),
}

_unhandled = set(TargetScope) - {TargetScope.ALL} - set(SCOPE_EXTRACTORS)
if _unhandled:
    raise RuntimeError(f"No extractor for scopes: {sorted(s.value for s in _unhandled)}")


def scoped_text_nodes(
    soup: BeautifulSoup, config: SearchConfiguration
) -> List[NavigableString]:
    """Text nodes inside the configured scope, in document order, once each.

    With ``exclude_urls`` the text of links is left out of the scope.
    """
    extractor = SCOPE_EXTRACTORS[config.target_scope]
    targets = extractor.targets(soup, config)
    excluded = {id(tag) for tag in extractor.excluded(soup, config)}
    seen = set()
    nodes: List[NavigableString] = []
    for target in targets:
        for node in target.find_all(string=True):
            if type(node) is not NavigableString or id(node) in seen:
                continue
            seen.add(id(node))
            if not node.strip():
                continue
            if node.parent is not None and node.parent.name in NON_CONTENT_TAGS:
                continue
            if excluded and any(id(parent) in excluded for parent in node.parents):
                continue
            if config.exclude_urls and node.find_parent("a") is not None:
                continue
            nodes.append(node)
    return nodes
