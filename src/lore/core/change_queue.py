import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from lore.core.constants import DEFAULT_DEBOUNCE_SECONDS
from lore.core.utils.logging import get_logger

BatchProcessor = Callable[[List[str]], Awaitable[Any]]


class ChangeQueue:
    """
    Deduplicated set of pending paths drained by one debounced background task.

    ``enqueue`` records the path and pushes the drain deadline forward by the
    quiet period. At most one drain task exists at a time. When the deadline
    passes, the task takes a snapshot of the pending set, clears it and hands
    the snapshot to ``process`` as one batch. Paths that arrive while the batch
    is being processed start another cycle of the same task.

    Must be used from the event loop thread; other threads should go through
    ``loop.call_soon_threadsafe(queue.enqueue, path)``.
    """

    def __init__(self, process: BatchProcessor, debounce: float = DEFAULT_DEBOUNCE_SECONDS,
                 name: str = "changes"):
        self._process = process
        self.debounce = max(0.0, float(debounce))
        self.name = name
        # dict keeps first-seen order, which becomes batch order
        self._pending: Dict[str, None] = {}
        self._task: Optional[asyncio.Task] = None
        self._deadline = 0.0
        self.logger = get_logger("lore.change_queue")

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> Tuple[str, ...]:
        return tuple(self._pending)

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, path: str) -> bool:
        """Add ``path`` and (re)arm the debounce. Returns False if it was already pending."""
        loop = asyncio.get_running_loop()
        added = path not in self._pending
        self._pending[path] = None
        self._deadline = loop.time() + self.debounce
        if added:
            self.logger.debug("change_queued", queue=self.name, path=path, pending=len(self._pending))
        if not self.in_flight:
            self._task = loop.create_task(self._drain())
        return added

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending:
            remaining = self._deadline - loop.time()
            while remaining > 0:
                await asyncio.sleep(remaining)
                remaining = self._deadline - loop.time()

            batch = list(self._pending)
            self._pending.clear()
            self.logger.info("change_batch_start", queue=self.name, size=len(batch))
            try:
                await self._process(batch)
            except Exception as e:
                self.logger.error("change_batch_failed", queue=self.name, size=len(batch),
                                  error=str(e), exc_info=True)

    async def join(self) -> None:
        """Wait until the current drain task (if any) has finished."""
        while self.in_flight:
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    def cancel(self) -> None:
        """Stop the pending debounce/drain. Paths not yet taken stay queued."""
        if self.in_flight:
            self._task.cancel()
