"""
Single-flight registry for lyrics-engine.

At most one fetch per logical key is in flight at any time. Callers that
find a pending task for their key await that task instead of starting a
new fetch, so N concurrent requests for the same song cost one provider
call and all N observe the same result (or the same exception).

The registry is a plain dict of key -> asyncio.Task. It needs no lock:
the event loop never switches tasks between the has/set pair in run(),
because there is no await between them.

Usage:
    registry = InFlightRegistry()

    result = await registry.run(key, lambda: fetch(song))
"""

import asyncio
from typing import Any, Awaitable, Callable

from lyrics_engine.core.logger import get_logger


logger = get_logger(__name__)


class InFlightRegistry:
    """
    Map of logical key to the pending task computing it.

    Removal happens exactly once, from inside the task's own finally
    block, whether the task succeeds, fails or is cancelled. Cancelling a
    caller (the starter included) never cancels the shared task.
    """

    def __init__(self) -> None:
        self._ongoing: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._ongoing)

    def has_ongoing(self, key: str) -> bool:
        return key in self._ongoing

    def get_ongoing(self, key: str) -> asyncio.Task | None:
        return self._ongoing.get(key)

    def set_ongoing(self, key: str, task: asyncio.Task) -> None:
        """
        Register a pending task for key.

        Raises:
            RuntimeError: If a pending task is already registered for key.
        """
        existing = self._ongoing.get(key)
        if existing is not None and not existing.done():
            raise RuntimeError(f"A fetch is already in flight for key: {key}")
        self._ongoing[key] = task

    def delete_ongoing(self, key: str, task: asyncio.Task | None = None) -> None:
        """
        Remove the entry for key.

        When task is given, the entry is only removed if it still belongs
        to that task.
        """
        if task is not None and self._ongoing.get(key) is not task:
            return
        self._ongoing.pop(key, None)

    def clear(self) -> None:
        """Forget every entry. Pending tasks keep running to completion."""
        self._ongoing.clear()

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """
        Join the pending task for key, or start one with factory().

        Args:
            key: Logical key (cache key or composite translation key).
            factory: Zero-argument callable returning the awaitable to run.

        Returns:
            The task's result. Exceptions of the task propagate to every
            caller that joined it.
        """
        existing = self._ongoing.get(key)
        if existing is not None and not existing.done():
            logger.debug(f"Joining in-flight fetch: {key}")
            # shield: a cancelled joiner must not cancel the shared task
            return await asyncio.shield(existing)

        async def scoped() -> Any:
            try:
                return await factory()
            finally:
                self.delete_ongoing(key, task)

        task = asyncio.ensure_future(scoped())
        self.set_ongoing(key, task)
        # shield: cancelling the starter must not cancel the shared task
        return await asyncio.shield(task)
