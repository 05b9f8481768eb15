"""
Cached collection repository.

Wraps a backing store with a synchronous in-memory cache so readers never
wait on I/O, and offers an asynchronous refresh that reloads collections
from the backing store (picking up writes made by other processes).
One instance is built per system and passed by reference to every manager.
"""

import asyncio
import copy
import threading
from typing import Any, Dict, Iterable, List, Optional

from .storage import CollectionStore
from .logging_config import get_logger


logger = get_logger("microfinance.cache")


class CachedStore(CollectionStore):
    """Write-through cache in front of a CollectionStore"""

    def __init__(self, backend: CollectionStore):
        self.backend = backend
        self._cache: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Any]] = None
        self._depth = 0

        # Bumped on every local change; a refresh only lands if it is unchanged
        self._versions: Dict[str, int] = {}

    def read(self, name: str, default: Any = None) -> Any:
        with self._lock:
            if name not in self._cache:
                if not self.backend.exists(name):
                    return copy.deepcopy(default)
                self._cache[name] = self.backend.read(name)
            return copy.deepcopy(self._cache[name])

    def write(self, name: str, document: Any) -> None:
        with self._lock:
            self.backend.write(name, document)
            self._cache[name] = copy.deepcopy(document)
            self._bump(name)

    def delete(self, name: str) -> bool:
        with self._lock:
            self._cache.pop(name, None)
            self._bump(name)
            return self.backend.delete(name)

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._cache or self.backend.exists(name)

    def names(self) -> List[str]:
        return self.backend.names()

    def close(self) -> None:
        self.backend.close()

    def is_cached(self, name: str) -> bool:
        """Check whether a collection is currently held in memory"""
        with self._lock:
            return name in self._cache

    def _bump(self, name: str) -> None:
        self._versions[name] = self._versions.get(name, 0) + 1

    def _reload(self, names: Iterable[str]) -> List[str]:
        loaded = []
        for name in names:
            with self._lock:
                version = self._versions.get(name, 0)
            present = self.backend.exists(name)
            document = self.backend.read(name) if present else None
            with self._lock:
                if self._versions.get(name, 0) != version:
                    logger.debug(f"Skipped refresh of {name}: written during reload")
                    continue
                if present:
                    self._cache[name] = document
                else:
                    self._cache.pop(name, None)
            loaded.append(name)
        return loaded

    async def refresh(self, *names: str) -> List[str]:
        """
        Reload collections from the backing store without blocking the event loop.

        A collection written through this cache while its reload is in flight
        keeps the newer cached document.

        Args:
            names: Collections to reload; every stored collection when omitted

        Returns:
            Names of the collections that were reloaded
        """
        targets = list(names) if names else await asyncio.to_thread(self.backend.names)
        loaded = await asyncio.to_thread(self._reload, targets)
        logger.debug(f"Refreshed collections: {', '.join(loaded)}")
        return loaded

    def begin_transaction(self) -> None:
        with self._lock:
            if self._depth == 0:
                self._snapshot = copy.deepcopy(self._cache)
            self._depth += 1
            self.backend.begin_transaction()

    def commit(self) -> None:
        with self._lock:
            self.backend.commit()
            if self._depth > 0:
                self._depth -= 1
                if self._depth == 0:
                    self._snapshot = None

    def rollback(self) -> None:
        with self._lock:
            self.backend.rollback()
            if self._snapshot is not None:
                for name in set(self._cache) | set(self._snapshot):
                    self._bump(name)
                self._cache = self._snapshot
            self._snapshot = None
            self._depth = 0
