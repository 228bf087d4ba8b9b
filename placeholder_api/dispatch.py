"""Callback dispatch.

Runs exported callbacks on behalf of the resolver. A callback that raises,
returns something other than a string, or runs past the timeout produces a
CallbackError that is logged and turned into a fallback value; it never
reaches the caller of `replace`.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass

from placeholder_api.callbacks import CallbackTable, ExportedCallback
from placeholder_api.exceptions import CallbackError, CallbackTimeoutError
from placeholder_api.types import CallbackRef, PlaceholderContext, PlaceholderDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one callback invocation."""

    value: str
    error: CallbackError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_callback(exported: ExportedCallback, args: tuple):
    """Run a callback to completion on the current (worker) thread."""
    if exported.is_async:
        return asyncio.run(exported.func(*args))
    return exported.func(*args)


class CallbackDispatcher:
    """Invokes callbacks with timeout and failure isolation.

    Args:
        table: Callback table to resolve references against
        timeout_seconds: Per-invocation timeout
        max_workers: Worker thread count for synchronous dispatch
        failure_fallback: "marker" keeps the marker text, "empty" substitutes ""
    """

    def __init__(
        self,
        table: CallbackTable,
        timeout_seconds: float = 2.0,
        max_workers: int | None = None,
        failure_fallback: str = "marker",
    ):
        self._table = table
        self._timeout = timeout_seconds
        self._failure_fallback = failure_fallback
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="placeholder-cb"
        )
        # Calls that outlived their timeout and still hold a worker thread
        self._overdue: dict[CallbackRef, set[Future]] = {}
        self._overdue_lock = threading.Lock()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def fallback(self, marker_text: str) -> str:
        """Value substituted for a marker whose callback failed."""
        return marker_text if self._failure_fallback == "marker" else ""

    def overdue_callbacks(self) -> list[CallbackRef]:
        """Callbacks with a call still running past its timeout."""
        with self._overdue_lock:
            return sorted(self._overdue, key=str)

    def _prepare(
        self, definition: PlaceholderDefinition, param: str, context: PlaceholderContext
    ) -> tuple[ExportedCallback, tuple]:
        exported = self._table.get(definition.callback_ref)
        if exported is None:
            raise CallbackError(
                f"Callback {definition.callback_ref} is not exported",
                str(definition.callback_ref),
            )
        args = exported.build_args(
            definition.token, param, context.target, definition.context_kind
        )
        return exported, args

    def _submit(self, exported: ExportedCallback, args: tuple) -> Future:
        """Submit a call to the worker pool unless an earlier call is still stuck.

        A running worker thread can't be interrupted, so a callback that hangs
        past its timeout is given no further workers until that call returns.
        """
        ref = exported.ref
        with self._overdue_lock:
            if self._overdue.get(ref):
                raise CallbackTimeoutError(
                    f"Callback {ref} is still running past its timeout, call skipped",
                    str(ref),
                )
        return self._executor.submit(_run_callback, exported, args)

    def _timed_out(
        self, definition: PlaceholderDefinition, future: Future | None
    ) -> CallbackTimeoutError:
        ref = definition.callback_ref
        if future is not None and not future.cancel():
            with self._overdue_lock:
                self._overdue.setdefault(ref, set()).add(future)
            future.add_done_callback(lambda f: self._release_overdue(ref, f))
        return CallbackTimeoutError(
            f"Callback {ref} timed out after {self._timeout:.3f}s", str(ref)
        )

    def _release_overdue(self, ref: CallbackRef, future: Future) -> None:
        with self._overdue_lock:
            futures = self._overdue.get(ref)
            if futures is None:
                return
            futures.discard(future)
            if not futures:
                del self._overdue[ref]
        logger.info("[DISPATCH] Overdue call to %s finished", ref)

    def _check_value(self, definition: PlaceholderDefinition, value) -> str:
        if not isinstance(value, str):
            raise CallbackError(
                f"Callback {definition.callback_ref} returned {type(value).__name__}, expected str",
                str(definition.callback_ref),
            )
        return value

    def _failed(
        self, definition: PlaceholderDefinition, marker_text: str, error: CallbackError
    ) -> DispatchResult:
        logger.warning("[DISPATCH] %s failed: %s", marker_text, error)
        return DispatchResult(self.fallback(marker_text), error)

    def invoke(
        self,
        definition: PlaceholderDefinition,
        param: str,
        context: PlaceholderContext,
        marker_text: str,
    ) -> DispatchResult:
        """Invoke a callback synchronously, waiting at most the timeout."""
        try:
            exported, args = self._prepare(definition, param, context)
            future = self._submit(exported, args)
            try:
                value = future.result(timeout=self._timeout)
            except FutureTimeoutError:
                raise self._timed_out(definition, future) from None
            except CallbackError:
                raise
            except Exception as e:
                raise CallbackError(
                    f"Callback {definition.callback_ref} raised {type(e).__name__}: {e}",
                    str(definition.callback_ref),
                ) from e
            return DispatchResult(self._check_value(definition, value))
        except CallbackError as e:
            return self._failed(definition, marker_text, e)

    async def ainvoke(
        self,
        definition: PlaceholderDefinition,
        param: str,
        context: PlaceholderContext,
        marker_text: str,
    ) -> DispatchResult:
        """Invoke a callback from an event loop.

        Coroutine callbacks are awaited directly and cancelled on timeout;
        plain callbacks run on the worker pool so they cannot block the loop.
        """
        try:
            exported, args = self._prepare(definition, param, context)
            future = None
            try:
                if exported.is_async:
                    awaitable = exported.func(*args)
                else:
                    future = self._submit(exported, args)
                    awaitable = asyncio.wrap_future(future)
                value = await asyncio.wait_for(awaitable, timeout=self._timeout)
            except asyncio.TimeoutError:
                raise self._timed_out(definition, future) from None
            except asyncio.CancelledError:
                raise
            except CallbackError:
                raise
            except Exception as e:
                raise CallbackError(
                    f"Callback {definition.callback_ref} raised {type(e).__name__}: {e}",
                    str(definition.callback_ref),
                ) from e
            return DispatchResult(self._check_value(definition, value))
        except CallbackError as e:
            return self._failed(definition, marker_text, e)

    def shutdown(self) -> None:
        """Stop the worker pool without waiting for stuck callbacks."""
        self._executor.shutdown(wait=False, cancel_futures=True)
