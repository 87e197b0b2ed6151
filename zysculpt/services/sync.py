"""
OUTBOUND SYNC MODULE
====================

The one place where in-memory changes are pushed to the remote store.

RULES:
  - Fire and forget: submit() returns immediately; the store that called it
    has already applied the change locally.
  - Best effort: a failed write is logged and dropped. No retry, no rollback,
    and this module never touches the in-memory stores.
  - Per-key ordering: writes that share a key (a session id, or "profile") run
    one after another in submission order, so an update can't overtake the
    insert it depends on. Writes with different keys don't wait for each other.

When no event loop is running (scripts, plain sync code) the write runs inline.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger("Zysculpt")

WriteFactory = Callable[[], Awaitable[Any]]


class OutboundSync:
    """Dispatches best-effort remote writes. Disabled (a no-op) when there is no remote store."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._tails: Dict[str, asyncio.Task] = {}
        self._pending: Set[asyncio.Task] = set()

    def submit(self, key: str, label: str, factory: WriteFactory) -> Optional[asyncio.Task]:
        """
        Schedule factory() as a remote write. Returns the task (or None when
        sync is disabled or the write ran inline).
        """
        if not self.enabled:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._run(label, factory))
            return None

        previous = self._tails.get(key)
        if previous is not None and (previous.done() or previous.get_loop() is not loop):
            previous = None

        async def ordered():
            if previous is not None:
                await asyncio.wait([previous])
            await self._run(label, factory)

        task = loop.create_task(ordered())
        self._tails[key] = task
        self._pending.add(task)
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    def _forget(self, key: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _run(self, label: str, factory: WriteFactory) -> None:
        try:
            await factory()
        except Exception as e:
            logger.error("Remote %s failed (local state kept): %s", label, e)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every submitted write has finished (successfully or not)."""
        while self._pending:
            await asyncio.wait(list(self._pending))
