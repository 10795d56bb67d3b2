"""
Task Schedulers
===============

Interchangeable worker pools behind a ``submit(task)`` / ``join()``
capability, selected by name:

1. serial  - in-process, submission order
2. thread  - concurrent.futures.ThreadPoolExecutor
3. process - concurrent.futures.ProcessPoolExecutor
4. joblib  - joblib.Parallel (loky workers)

``join`` returns the results of finished tasks in no particular order. When
the optional cancel event is set, tasks that have not started are dropped
and results of finished tasks are still returned. A task that raises (or
cannot reach its worker) propagates from ``join`` unless ``on_error`` is
given, in which case ``on_error(index, exc)`` stands in for its result,
``index`` being the task's submission position.
"""

import itertools
import logging
import os
import threading
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Any, Callable, List, Optional, Protocol

from joblib import Parallel, delayed

logger = logging.getLogger(__name__)

Task = Callable[[], Any]
ErrorHandler = Callable[[int, BaseException], Any]


class Scheduler(Protocol):
    """Bounded pool that runs independent tasks."""

    def submit(self, task: Task) -> None:
        ...

    def join(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_error: Optional[ErrorHandler] = None
    ) -> List[Any]:
        ...


class SerialScheduler:
    """Run tasks one after another in the calling thread."""

    def __init__(self, worker_count: int = 1):
        self.worker_count = 1
        self._tasks: List[Task] = []

    def submit(self, task: Task) -> None:
        self._tasks.append(task)

    def join(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_error: Optional[ErrorHandler] = None
    ) -> List[Any]:
        results = []
        for index, task in enumerate(self._tasks):
            if cancel_event is not None and cancel_event.is_set():
                break
            try:
                results.append(task())
            except Exception as e:
                if on_error is None:
                    self._tasks = []
                    raise
                results.append(on_error(index, e))

        skipped = len(self._tasks) - len(results)
        if skipped:
            logger.warning(f"Cancelled: {skipped} task(s) not started")
        self._tasks = []
        return results


class _FuturesScheduler:
    """Shared logic for concurrent.futures pools."""

    executor_cls = ThreadPoolExecutor

    def __init__(self, worker_count: int = 1):
        self.worker_count = worker_count
        self._pool: Optional[Executor] = None
        self._futures = []

    def submit(self, task: Task) -> None:
        if self._pool is None:
            self._pool = self.executor_cls(max_workers=self.worker_count)
        self._futures.append(self._pool.submit(task))

    @staticmethod
    def _result(future, index: int, on_error: Optional[ErrorHandler]):
        try:
            return future.result()
        except Exception as e:
            if on_error is None:
                raise
            logger.error(f"Task {index} failed in its worker: {type(e).__name__}: {e}")
            return on_error(index, e)

    def join(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_error: Optional[ErrorHandler] = None
    ) -> List[Any]:
        results = []
        positions = {future: i for i, future in enumerate(self._futures)}
        pending = set(self._futures)
        try:
            for future in as_completed(self._futures):
                pending.discard(future)
                results.append(self._result(future, positions[future], on_error))
                if cancel_event is not None and cancel_event.is_set():
                    break

            # Drop tasks not started yet; running ones still finish
            cancelled = sum(1 for future in pending if future.cancel())
            if cancelled:
                logger.warning(f"Cancelled: {cancelled} task(s) not started")
            for future in pending:
                if not future.cancelled():
                    results.append(self._result(future, positions[future], on_error))
        finally:
            if self._pool is not None:
                self._pool.shutdown(wait=True, cancel_futures=True)
            self._pool = None
            self._futures = []

        return results


class ThreadScheduler(_FuturesScheduler):
    executor_cls = ThreadPoolExecutor


class ProcessScheduler(_FuturesScheduler):
    """Process pool; tasks must be picklable."""
    executor_cls = ProcessPoolExecutor


class _Captured:
    """Exception raised by a task, returned across the joblib boundary."""

    def __init__(self, error: BaseException):
        self.error = error


def _run_captured(task: Task):
    try:
        return task()
    except Exception as e:
        return _Captured(e)


class JoblibScheduler:
    """Dispatch tasks through joblib.Parallel."""

    def __init__(self, worker_count: int = 1, backend: str = 'loky'):
        self.worker_count = worker_count
        self.backend = backend
        self._tasks: List[Task] = []

    def submit(self, task: Task) -> None:
        self._tasks.append(task)

    def join(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_error: Optional[ErrorHandler] = None
    ) -> List[Any]:
        tasks = iter(self._tasks)
        if cancel_event is not None:
            # Parallel consumes the generator lazily, so dispatch stops once set
            tasks = itertools.takewhile(lambda _: not cancel_event.is_set(), tasks)

        parallel = Parallel(n_jobs=self.worker_count, backend=self.backend)
        try:
            outputs = list(parallel(delayed(_run_captured)(task) for task in tasks))
        finally:
            submitted = len(self._tasks)
            self._tasks = []

        results = []
        for index, output in enumerate(outputs):
            if isinstance(output, _Captured):
                if on_error is None:
                    raise output.error
                logger.error(f"Task {index} failed in its worker: "
                             f"{type(output.error).__name__}: {output.error}")
                output = on_error(index, output.error)
            results.append(output)

        skipped = submitted - len(results)
        if skipped:
            logger.warning(f"Cancelled: {skipped} task(s) not started")
        return results


SCHEDULERS = {
    'serial': SerialScheduler,
    'thread': ThreadScheduler,
    'process': ProcessScheduler,
    'joblib': JoblibScheduler,
}


def make_scheduler(backend: str = 'thread', worker_count: int = 1) -> Scheduler:
    """
    Build a scheduler by name.

    Parameters
    ----------
    backend : str
        'serial', 'thread', 'process' or 'joblib'
    worker_count : int
        Requested workers, capped at the available CPUs

    Returns
    -------
    Scheduler
        Fresh scheduler instance
    """
    if backend not in SCHEDULERS:
        raise ValueError(f"Unknown scheduler backend: {backend}")
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")

    available = os.cpu_count() or 1
    if worker_count > available:
        logger.warning(f"worker_count={worker_count} exceeds {available} CPUs; using {available}")
        worker_count = available

    return SCHEDULERS[backend](worker_count=worker_count)
