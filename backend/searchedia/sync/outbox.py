"""Outbound write queue for background persistence.

Writes are keyed by ``(collection, record_id)``. Writes for the same key
run one at a time and coalesce: while one is in flight, newer submissions
replace each other and only the newest runs next. Different keys proceed
concurrently. Failures are logged and reported, never raised.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

OutboxKey = tuple[str, str]
WriteFactory = Callable[[], Awaitable[Any]]
FailureHandler = Callable[[OutboxKey, Exception], None]


class Outbox:
    """Per-record serialized, coalescing, fire-and-forget writes."""

    def __init__(self, on_failure: FailureHandler | None = None) -> None:
        self._on_failure = on_failure
        self._pending: dict[OutboxKey, WriteFactory] = {}
        self._workers: dict[OutboxKey, asyncio.Task[None]] = {}
        self.completed_count = 0
        self.failed_count = 0

    @property
    def pending_count(self) -> int:
        """Number of records with a write queued or in flight."""
        return len(self._workers)

    def submit(self, key: OutboxKey, write: WriteFactory) -> None:
        self._pending[key] = write
        if key not in self._workers:
            self._workers[key] = asyncio.get_running_loop().create_task(self._run(key))

    async def _run(self, key: OutboxKey) -> None:
        try:
            while key in self._pending:
                write = self._pending.pop(key)
                try:
                    await write()
                    self.completed_count += 1
                except Exception as e:
                    self.failed_count += 1
                    logger.warning("Background write for %s/%s failed: %s", key[0], key[1], e)
                    if self._on_failure is not None:
                        self._on_failure(key, e)
        finally:
            self._workers.pop(key, None)

    async def drain(self) -> None:
        """Wait until every queued write has settled."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)
