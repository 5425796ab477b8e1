from .matcher import MatchEngine
from .replacer import ReplaceEngine
from .scopes import SCOPE_EXTRACTORS, ScopeExtractor

__all__ = [
    "MatchEngine",
    "ReplaceEngine",
    "ScopeExtractor",
    "SCOPE_EXTRACTORS",
]
