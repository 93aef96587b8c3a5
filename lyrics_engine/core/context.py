"""
Process-wide engine state.

EngineContext owns everything the orchestrators share: configuration,
the persistent store, the single-flight registry and the two in-memory
caches. One context is built per process (or per test) and handed to
every service, so there is no module-level mutable state.
"""

import time
from typing import Any, Callable

from lyrics_engine.core.config import Config
from lyrics_engine.core.inflight import InFlightRegistry
from lyrics_engine.core.models import LyricsCacheEntry, TranslationRecord
from lyrics_engine.core.store import PersistentStore


def now_ms() -> int:
    """Current wall clock time in milliseconds."""
    return int(time.time() * 1000)


class EngineContext:
    """
    Shared state of one engine instance.

    Attributes:
        config: Engine configuration.
        store: Persistent collections.
        registry: In-flight fetches by key.
        lyrics_memory: Cache key -> resolved lyrics.
        translation_memory: Composite key -> translation record.
        clock: Returns the current time in milliseconds; replaceable in tests.
    """

    def __init__(
        self,
        config: Config,
        store: PersistentStore,
        registry: InFlightRegistry | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.store = store
        self.registry = registry if registry is not None else InFlightRegistry()
        self.lyrics_memory: dict[str, LyricsCacheEntry] = {}
        self.translation_memory: dict[str, TranslationRecord] = {}
        self.clock = clock

    def now(self) -> int:
        return self.clock()

    def clear_memory(self) -> None:
        """Drop both in-memory caches."""
        self.lyrics_memory.clear()
        self.translation_memory.clear()

    def memory_stats(self) -> dict[str, Any]:
        return {
            "lyrics": len(self.lyrics_memory),
            "translations": len(self.translation_memory),
            "in_flight": len(self.registry),
        }

    def close(self) -> None:
        self.clear_memory()
        self.registry.clear()
        self.store.close()
