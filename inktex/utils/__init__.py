"""Model and vocabulary fetching."""

from inktex.utils.model_cache import ModelCache, fetch_with_cache

__all__ = ['ModelCache', 'fetch_with_cache']
