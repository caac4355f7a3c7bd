import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar, Union

from lore.core.constants import DEFAULT_BATCH_DELAY_SECONDS, DEFAULT_BATCH_SIZE
from lore.core.models import BatchProgress
from lore.core.utils.logging import get_logger

T = TypeVar("T")
ItemHandler = Callable[[T], Union[Awaitable[Any], Any]]
ProgressHandler = Callable[[BatchProgress], Any]


class BatchScheduler:
    """
    Runs long indexing jobs in fixed-size slices on the event loop.

    Every item of a slice is handled back to back; between slices the
    scheduler sleeps for ``delay`` so other coroutines get the loop. The
    cancellation flag is only consulted before a slice starts, so a
    handler that has begun always finishes.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        delay: float = DEFAULT_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.batch_size = max(1, int(batch_size))
        self.delay = max(0.0, float(delay))
        self._sleep = sleep
        self._cancelled = False
        self.logger = get_logger("lore.scheduler")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False

    async def run_batches(
        self,
        items: Sequence[T],
        on_item: ItemHandler,
        batch_size: Optional[int] = None,
        delay: Optional[float] = None,
        on_progress: Optional[ProgressHandler] = None,
        label: str = "items",
    ) -> int:
        """Process ``items`` slice by slice and return how many were handled.

        Returns early, without raising, when cancellation is observed at a
        slice boundary.
        """
        size = max(1, int(batch_size or self.batch_size))
        pause = self.delay if delay is None else max(0.0, float(delay))
        total = len(items)
        processed = 0

        for start in range(0, total, size):
            if self._cancelled:
                self.logger.info("batch_cancelled", label=label, processed=processed, total=total)
                break

            for item in items[start:start + size]:
                result = on_item(item)
                if inspect.isawaitable(result):
                    await result
                processed += 1

            progress = BatchProgress(processed=processed, total=total, label=label)
            self.logger.debug("batch_progress", label=label, processed=processed, total=total)
            if on_progress is not None:
                on_progress(progress)

            if start + size < total:
                await self._sleep(pause)

        return processed
