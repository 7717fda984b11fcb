from __future__ import annotations

from dataclasses import dataclass

from clinic.services.cache import CacheService
from clinic.services.monitoring import Monitor
from clinic.services.session import Authenticator, LoginThrottle


@dataclass
class Services:
    """Process-wide service objects, built once at startup."""
    monitor: Monitor
    cache: CacheService
    throttle: LoginThrottle
    authenticator: Authenticator

    @classmethod
    def build(cls) -> 'Services':
        monitor = Monitor()
        throttle = LoginThrottle()
        return cls(
            monitor=monitor,
            cache=CacheService(),
            throttle=throttle,
            authenticator=Authenticator(monitor, throttle),
        )
