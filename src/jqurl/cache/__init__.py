"""On-disk response caching for jqurl.

This package provides :class:`ResponseCache`, the store the fetcher consults
before going to the network. Each target gets one file holding the raw
response bytes; freshness is judged from the file's modification time.

Cache keys come from :func:`compute_key`, a fingerprint of the URL string
and the invoking user's id, so two users sharing a cache directory never
read each other's entries.
"""

from jqurl.cache.cache import ResponseCache, compute_key, effective_user_id

__all__ = ["ResponseCache", "compute_key", "effective_user_id"]
