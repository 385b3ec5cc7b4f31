"""
Concurrent processor: bounded thread pool with cooperative cancellation.
"""
import concurrent.futures
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Iterator, List, Optional, TypeVar

from .classify import DEFAULT_STATUS_CODES
from .errors import ErrorKind, OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, Optional[int]], None]

# Replaced from the caller's table once the error reaches a classifier
CANCELLED_FALLBACK_CODE = DEFAULT_STATUS_CODES[ErrorKind.CANCELLED.value]


def default_workers() -> int:
    # IO-bound work: same sizing as a stdlib ThreadPoolExecutor
    return min(32, (os.cpu_count() or 1) + 4)

class CancellationToken:
    """Shared flag checked at file boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: Optional[str] = None) -> None:
        if self._event.is_set():
            raise OperationCancelledError("Operation cancelled", status_code=CANCELLED_FALLBACK_CODE, operation=operation)

@dataclass(frozen=True)
class TaskResult(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

@dataclass
class ProcessorStats:
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    elapsed: float = 0.0
    errors: List[BaseException] = field(default_factory=list)

class ConcurrentProcessor(Generic[T, R]):
    """
    Runs task_fn over items on a bounded pool and yields TaskResults as they
    complete. At most 2 x workers tasks are in flight at any time.

    Cancellation stops submission and drops queued futures. Closing the
    generator early shuts the pool down before returning.
    """

    def __init__(
        self,
        task_fn: Callable[[T], R],
        workers: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self.task_fn = task_fn
        self.workers = max(1, workers or default_workers())
        self.cancel = cancel
        self.progress = progress
        self.stats = ProcessorStats()

    def _run(self, item: T) -> TaskResult:
        if self.cancel is not None and self.cancel.cancelled:
            return TaskResult(item=item, error=OperationCancelledError("Operation cancelled", status_code=CANCELLED_FALLBACK_CODE))
        start = time.perf_counter()
        try:
            value = self.task_fn(item)
        except Exception as e:
            return TaskResult(item=item, error=e, duration=time.perf_counter() - start)
        return TaskResult(item=item, value=value, duration=time.perf_counter() - start)

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.cancelled

    def process(self, items: Iterable[T], total: Optional[int] = None) -> Iterator[TaskResult]:
        started = time.perf_counter()
        window = self.workers * 2
        source = iter(items)
        pending: set = set()
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="dirvault"
        )
        try:
            exhausted = False
            while True:
                # 1. Top up the in-flight window
                while not exhausted and len(pending) < window and not self._cancelled():
                    try:
                        item = next(source)
                    except StopIteration:
                        exhausted = True
                        break
                    pending.add(executor.submit(self._run, item))
                    self.stats.submitted += 1
                if not pending:
                    break

                # 2. Hand back whatever finished
                done, pending = concurrent.futures.wait(
                    pending, return_when=concurrent.futures.FIRST_COMPLETED
                )
                for future in done:
                    result = future.result()
                    self.stats.completed += 1
                    if result.error is not None:
                        self.stats.failed += 1
                        self.stats.errors.append(result.error)
                    if self.progress is not None:
                        self.progress(self.stats.completed, total)
                    yield result
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            self.stats.elapsed = time.perf_counter() - started
            logger.debug(
                "Processor finished: %d submitted, %d completed, %d failed in %.3fs",
                self.stats.submitted, self.stats.completed, self.stats.failed, self.stats.elapsed,
            )

def run_parallel(
    items: Iterable[T],
    fn: Callable[[T], R],
    workers: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    progress: Optional[ProgressCallback] = None,
) -> List[TaskResult]:
    """Collect every result of a ConcurrentProcessor run into a list."""
    items = list(items)
    processor = ConcurrentProcessor(fn, workers=workers, cancel=cancel, progress=progress)
    return list(processor.process(items, total=len(items)))
