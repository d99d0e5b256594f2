"""
Advisory bookkeeping of recently used target URLs per API surface

The registry does not own sockets; httpx pools those. It records which
targets were used and when, so callers can observe reuse patterns.
"""
import time
from typing import Callable, Dict, List

from core.logging import get_logger

from .types import ConnectionRecord, Surface


class ConnectionRegistry:
    """Capacity- and TTL-bounded registry, one map per surface"""

    def __init__(
        self,
        max_connections: int = 10,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_connections = max_connections
        self.ttl = ttl
        self._clock = clock
        self._registries: Dict[Surface, Dict[str, ConnectionRecord]] = {
            Surface.ADMIN: {},
            Surface.CONTROL: {},
        }
        self.logger = get_logger("apisix.connections", domain="apisix")

    def touch(self, url: str, surface: Surface) -> str:
        """Record use of a target URL and return it unchanged"""
        surface = Surface(surface)
        registry = self._registries[surface]
        now = self._clock()

        for stale in [key for key, record in registry.items() if now - record.last_used > self.ttl]:
            del registry[stale]

        if url not in registry and len(registry) >= self.max_connections:
            # Dict order is insertion order, so the first key is the oldest insert
            evicted = next(iter(registry))
            del registry[evicted]
            self.logger.debug(f"Evicted {surface.value} connection record {evicted}")

        record = registry.get(url)
        if record is None:
            registry[url] = ConnectionRecord(url=url, last_used=now)
        else:
            record.last_used = now
        return url

    def records(self, surface: Surface) -> List[ConnectionRecord]:
        return list(self._registries[Surface(surface)].values())

    def stats(self) -> Dict[str, int]:
        admin = len(self._registries[Surface.ADMIN])
        control = len(self._registries[Surface.CONTROL])
        return {"admin": admin, "control": control, "total": admin + control}

    def clear(self) -> None:
        for registry in self._registries.values():
            registry.clear()
