from typing import Any, Callable, Optional

from django.conf import settings
from django.core.cache import caches

_MISSING = object()


class CacheService:
    """TTL key/value store over a configured Django cache alias.

    Expiry is enforced lazily by the backend on read (locmem or file
    based, see ``settings.CACHES``).
    """

    def __init__(self, alias: str = 'default', default_ttl: Optional[int] = None):
        self.alias = alias
        self.default_ttl = default_ttl if default_ttl is not None else settings.CACHE_DEFAULT_TTL

    @property
    def backend(self):
        return caches[self.alias]

    def get(self, key: str, default: Any = None) -> Any:
        return self.backend.get(key, default)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.backend.set(key, value, self.default_ttl if ttl is None else ttl)

    def remember(self, key: str, producer: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        value = self.backend.get(key, _MISSING)
        if value is _MISSING:
            value = producer()
            if value is not None:
                self.set(key, value, ttl)
        return value

    def ping(self) -> bool:
        self.set('healthz:ping', 1, 5)
        return self.get('healthz:ping') == 1
