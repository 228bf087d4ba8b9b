"""Periodic task scheduling.

Plugins that refresh text on an interval (sidebars, boards) take a
Scheduler instead of owning a timer. Two implementations are provided:
a timer-thread one for threaded hosts and an asyncio one for hosts that
run an event loop.
"""

import asyncio
import inspect
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

_task_ids = itertools.count(1)


class CancelHandle:
    """Handle returned by schedule_periodic(); cancel() is idempotent."""

    def __init__(self, name: str, on_cancel: Callable[[], None]):
        self.name = name
        self._on_cancel = on_cancel
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._on_cancel()
        logger.debug("[SCHEDULER] Cancelled %s", self.name)

    def __repr__(self) -> str:
        return f"CancelHandle({self.name!r}, cancelled={self._cancelled})"


class Scheduler(ABC):
    """Runs a function every `interval_ms` milliseconds until cancelled."""

    def __init__(self) -> None:
        self._handles: list[CancelHandle] = []
        self._handles_lock = threading.Lock()

    @abstractmethod
    def schedule_periodic(
        self, interval_ms: int, fn: Callable[[], object], *, name: str | None = None
    ) -> CancelHandle:
        """Schedule `fn`; the first run happens one interval from now."""

    def active(self) -> list[CancelHandle]:
        """Schedules created by this scheduler that are not cancelled."""
        with self._handles_lock:
            return list(self._handles)

    def cancel_all(self) -> None:
        """Cancel every schedule created by this scheduler."""
        for handle in self.active():
            handle.cancel()

    def _track(self, name: str, on_cancel: Callable[[], None]) -> CancelHandle:
        """Create a handle that drops out of active() once cancelled."""

        def cancel() -> None:
            on_cancel()
            with self._handles_lock:
                if handle in self._handles:
                    self._handles.remove(handle)

        handle = CancelHandle(name, cancel)
        with self._handles_lock:
            self._handles.append(handle)
        return handle

    @staticmethod
    def _interval_seconds(interval_ms: int) -> float:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        return interval_ms / 1000.0

    @staticmethod
    def _task_name(fn: Callable, name: str | None) -> str:
        return name or f"{getattr(fn, '__name__', 'task')}-{next(_task_ids)}"


class ThreadScheduler(Scheduler):
    """Runs each schedule on its own daemon thread.

    A run that raises is logged and the schedule continues. Runs never
    overlap: the next interval starts after the previous run returns.
    """

    def schedule_periodic(
        self, interval_ms: int, fn: Callable[[], object], *, name: str | None = None
    ) -> CancelHandle:
        interval = self._interval_seconds(interval_ms)
        task_name = self._task_name(fn, name)
        stop = threading.Event()

        def run() -> None:
            while not stop.wait(interval):
                try:
                    fn()
                except Exception:
                    logger.exception("[SCHEDULER] Periodic task %s failed", task_name)

        thread = threading.Thread(target=run, name=f"periodic-{task_name}", daemon=True)
        handle = self._track(task_name, stop.set)
        thread.start()
        logger.debug("[SCHEDULER] Scheduled %s every %dms (thread)", task_name, interval_ms)
        return handle


class AsyncioScheduler(Scheduler):
    """Runs each schedule as a task on an asyncio event loop.

    `fn` may be a plain function or return an awaitable. Must be called
    from the loop's thread; the running loop is used when none is given.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        super().__init__()
        self._loop = loop

    def schedule_periodic(
        self, interval_ms: int, fn: Callable[[], object], *, name: str | None = None
    ) -> CancelHandle:
        interval = self._interval_seconds(interval_ms)
        task_name = self._task_name(fn, name)
        loop = self._loop or asyncio.get_running_loop()

        async def run() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    result = fn()
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("[SCHEDULER] Periodic task %s failed", task_name)

        task = loop.create_task(run(), name=f"periodic-{task_name}")
        handle = self._track(task_name, task.cancel)
        logger.debug("[SCHEDULER] Scheduled %s every %dms (asyncio)", task_name, interval_ms)
        return handle
