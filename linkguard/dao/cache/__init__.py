from linkguard.dao.cache.local_link_cache import CacheEntry, LocalLinkCache

__all__ = [
    'CacheEntry',
    'LocalLinkCache',
]
