"""Result caching and market-data collaborators for the risk engine."""

from .cache import ResultCache, fingerprint

__all__ = ["ResultCache", "fingerprint"]
