"""Search-text projections.

A :class:`Projection` is the text the matcher actually searches together with
a map from each of its characters back to an offset in the base string it was
derived from. Formatting inserts characters (mapped to ``-1``) and stripping
removes them, so a match found in the projection can always be traced back to
the span of the untouched document it came from.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Tuple

from findreplace.models import SearchConfiguration, SearchType

INSERTED = -1

_TOKENS = re.compile(r"<[^>]*>|[^<]+|<")
_REGEX_META = re.compile(r"[.*+?^${}()|[\]\\]")

STRUCTURAL_ATTRIBUTES = [
    re.compile(r'(?<![\w-])class="[^"]*"', re.IGNORECASE),
    re.compile(r'(?<![\w-])id="[^"]*"', re.IGNORECASE),
]

URL_REFERENCES = [
    re.compile(r'(?<![\w-])href="[^"]*"', re.IGNORECASE),
    re.compile(r'(?<![\w-])src="[^"]*"', re.IGNORECASE),
    re.compile(r'(?<![\w-])srcset="[^"]*"', re.IGNORECASE),
    re.compile(r'data-src="[^"]*"', re.IGNORECASE),
    re.compile(r'(?<![\w-])action="[^"]*"', re.IGNORECASE),
    re.compile(r'(?<![\w-])media="[^"]*"', re.IGNORECASE),
    re.compile(r"url\([^)]*\)", re.IGNORECASE),
    re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE),
    re.compile(r"<a(?:\s[^>]*)?>[^<]*</a>", re.IGNORECASE),
    re.compile(r'data-[^=\s]*="[^"]*"', re.IGNORECASE),
]

BARE_URL = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)


@dataclass
class Projection:
    text: str
    origin: List[int] = field(default_factory=list)

    @classmethod
    def identity(cls, base: str) -> "Projection":
        return cls(base, list(range(len(base))))

    def strip(self, patterns: Iterable[Pattern[str]]) -> "Projection":
        projection = self
        for pattern in patterns:
            projection = projection._remove(pattern)
        return projection

    def _remove(self, pattern: Pattern[str]) -> "Projection":
        pieces: List[str] = []
        origin: List[int] = []
        last = 0
        for match in pattern.finditer(self.text):
            pieces.append(self.text[last:match.start()])
            origin.extend(self.origin[last:match.start()])
            last = match.end()
        if last == 0:
            return self
        pieces.append(self.text[last:])
        origin.extend(self.origin[last:])
        return Projection("".join(pieces), origin)

    def source_span(self, start: int, end: int, base: str) -> Optional[Tuple[int, int]]:
        """Map ``text[start:end]`` back to a span of ``base``.

        Returns None when the span would cover base characters that were
        stripped from the search text (other than whitespace dropped by
        formatting), since rewriting it would destroy content the match never
        saw.
        """
        indices = [i for i in self.origin[start:end] if i != INSERTED]
        if not indices:
            return None
        for left, right in zip(indices, indices[1:]):
            if right <= left:
                return None
            if right - left > 1 and base[left + 1:right].strip():
                return None
        return indices[0], indices[-1] + 1


def format_html(content: str) -> Projection:
    """Lay raw HTML out one tag or trimmed text run per line."""
    text: List[str] = []
    origin: List[int] = []
    for token in _TOKENS.finditer(content):
        raw = token.group(0)
        stripped = raw.strip()
        if not stripped:
            continue
        offset = token.start() + (len(raw) - len(raw.lstrip()))
        if text:
            text.append("\n")
            origin.append(INSERTED)
        text.append(stripped)
        origin.extend(range(offset, offset + len(stripped)))
    return Projection("".join(text), origin)


def escape_term(term: str) -> str:
    return _REGEX_META.sub(lambda m: "\\" + m.group(0), term)


def regex_flags(config: SearchConfiguration) -> int:
    return 0 if config.case_sensitive else re.IGNORECASE


def build_pattern(config: SearchConfiguration) -> Pattern[str]:
    term = config.search_term
    if config.search_type is SearchType.REGEX:
        source = term
    elif config.search_type is SearchType.EXACT:
        source = rf"\b{escape_term(term)}\b"
    else:
        source = escape_term(term)
    return re.compile(source, regex_flags(config))


def build_html_block_pattern(config: SearchConfiguration) -> Pattern[str]:
    """Pattern for matching whole HTML fragments against raw content.

    Whitespace around tag boundaries becomes optional and ``<p>``/``</p>``
    wrappers may be absent.
    """
    term = config.search_term.strip()
    if config.search_type is SearchType.REGEX:
        return re.compile(term, regex_flags(config))
    source = escape_term(term)
    source = re.sub(r">\s*<", lambda _: r">\s*<", source)
    source = re.sub(r">\s+", lambda _: r">\s*", source)
    source = re.sub(r"\s+<", lambda _: r"\s*<", source)
    source = source.replace("</p>", "(?:</p>)?")
    source = re.sub(r"<p>", lambda _: "(?:<p>)?", source)
    return re.compile(source, regex_flags(config))


_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|<([^>]*)>|\d{1,2})")


def expand_replacement(template: str, match: "re.Match[str]") -> str:
    """Expand ``$1``, ``$<name>``, ``$&`` and ``$$`` against ``match``."""
    groups = match.re.groups

    def _expand(token: "re.Match[str]") -> str:
        value = token.group(1)
        if value == "$":
            return "$"
        if value == "&":
            return match.group(0)
        if value.startswith("<"):
            try:
                return match.group(token.group(2)) or ""
            except IndexError:
                return token.group(0)
        number = int(value)
        if 1 <= number <= groups:
            return match.group(number) or ""
        if len(value) == 2 and 1 <= int(value[0]) <= groups:
            return (match.group(int(value[0])) or "") + value[1]
        return token.group(0)

    return _REPLACEMENT_TOKEN.sub(_expand, template)


def splice(base: str, edits: List[Tuple[int, int, str]]) -> str:
    """Apply non-overlapping ``(start, end, text)`` edits to ``base``."""
    result = base
    for start, end, text in sorted(edits, key=lambda e: e[0], reverse=True):
        result = result[:start] + text + result[end:]
    return result


def context_snippet(text: str, index: int, radius: int) -> str:
    return text[max(0, index - radius):min(len(text), index + radius)]
