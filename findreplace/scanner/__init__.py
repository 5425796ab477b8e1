from .discovery import Discovery, DiscoveryOptions, DiscoveryResult

__all__ = ["Discovery", "DiscoveryOptions", "DiscoveryResult"]
