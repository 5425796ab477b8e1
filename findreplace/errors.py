from __future__ import annotations


class FindReplaceError(Exception):
    """Base class for errors raised by findreplace."""


class ConfigurationError(FindReplaceError, ValueError):
    """Invalid settings or search configuration."""


class FetchError(FindReplaceError):
    """A remote read failed (network error or non-2xx response)."""


class ScopeParseError(FindReplaceError):
    """Content or selector could not be structurally interpreted."""


class BackupError(FindReplaceError):
    pass


class WriteError(FindReplaceError):
    pass


class DiscoveryError(FindReplaceError):
    """The crawl could not complete (timeout or unusable root)."""
