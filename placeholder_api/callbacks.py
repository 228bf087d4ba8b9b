"""Exported callback table.

Plugin code exports plain functions under a (namespace, name) pair; the
engine binds placeholders to those references. Signatures are checked
when a function is exported, not when a template is resolved.

Callback signatures:
    def hello(token: str, param: str, player) -> str: ...   # player/actor
    def clock(token: str, param: str) -> str: ...            # server
Coroutine functions are accepted with the same signatures.
"""

import inspect
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from placeholder_api.exceptions import CallbackSignatureError
from placeholder_api.types import CallbackRef, ContextKind

logger = logging.getLogger(__name__)

Callback = Callable[..., str]


@dataclass(frozen=True)
class ExportedCallback:
    """A validated callback stored in the table."""

    ref: CallbackRef
    func: Callback
    takes_target: bool  # callable as (token, param, target)
    takes_two: bool  # callable as (token, param)
    is_async: bool

    def supports(self, kind: ContextKind) -> bool:
        """Check whether this callback can serve a placeholder of `kind`."""
        if kind is ContextKind.SERVER:
            return self.takes_two or self.takes_target
        return self.takes_target

    def build_args(self, token: str, param: str, target, kind: ContextKind) -> tuple:
        """Build the positional arguments for one invocation."""
        if kind is ContextKind.SERVER and self.takes_two:
            return (token, param)
        return (token, param, target)


def _positional_arity(func: Callback) -> tuple[int, int | None]:
    """Get (required, maximum) positional argument counts; maximum None = unbounded."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        # Some builtins expose no signature; let the call decide
        return (0, None)

    required = 0
    maximum: int | None = 0
    for p in sig.parameters.values():
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            maximum = None if maximum is None else maximum + 1
            if p.default is p.empty:
                required += 1
        elif p.kind is p.VAR_POSITIONAL:
            maximum = None
        elif p.kind is p.KEYWORD_ONLY and p.default is p.empty:
            # Required keyword-only arguments can never be satisfied
            return (required, -1)
    return (required, maximum)


def inspect_callback(func: Callback, namespace: str, name: str) -> ExportedCallback:
    """Validate a function and wrap it as an ExportedCallback.

    Raises:
        CallbackSignatureError: If the function can't take (token, param[, target])
    """
    if not callable(func):
        raise CallbackSignatureError(f"Callback {namespace}::{name} is not callable")

    required, maximum = _positional_arity(func)
    if maximum == -1:
        raise CallbackSignatureError(
            f"Callback {namespace}::{name} has required keyword-only parameters"
        )

    def fits(n: int) -> bool:
        return required <= n and (maximum is None or n <= maximum)

    takes_two = fits(2)
    takes_target = fits(3)
    if not (takes_two or takes_target):
        raise CallbackSignatureError(
            f"Callback {namespace}::{name} must accept (token, param) or "
            f"(token, param, target), got {required} required / {maximum} max positional args"
        )

    is_async = inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )
    return ExportedCallback(
        ref=CallbackRef(namespace, name),
        func=func,
        takes_target=takes_target,
        takes_two=takes_two,
        is_async=is_async,
    )


class CallbackTable:
    """Namespaced table of exported callback functions.

    Usage:
        table = CallbackTable()

        @table.export("JSPH", "helloPlayer")
        def hello(token, param, player):
            return f"Hello, {player.name}"
    """

    def __init__(self) -> None:
        self._callbacks: dict[CallbackRef, ExportedCallback] = {}
        self._lock = threading.Lock()

    def export_callback(self, func: Callback, namespace: str, name: str) -> ExportedCallback:
        """Export a function under (namespace, name), replacing any previous export."""
        exported = inspect_callback(func, namespace, name)
        with self._lock:
            if exported.ref in self._callbacks:
                logger.warning("[CALLBACKS] Callback %s already exported, overwriting", exported.ref)
            self._callbacks[exported.ref] = exported
        logger.debug(
            "[CALLBACKS] Exported %s (target=%s, async=%s)",
            exported.ref,
            exported.takes_target,
            exported.is_async,
        )
        return exported

    def export(self, namespace: str, name: str) -> Callable[[Callback], Callback]:
        """Decorator form of export_callback."""

        def decorator(func: Callback) -> Callback:
            self.export_callback(func, namespace, name)
            return func

        return decorator

    def get(self, ref: CallbackRef) -> ExportedCallback | None:
        """Get an exported callback."""
        return self._callbacks.get(ref)

    def remove(self, ref: CallbackRef) -> bool:
        """Remove one exported callback."""
        with self._lock:
            return self._callbacks.pop(ref, None) is not None

    def remove_namespace(self, namespace: str) -> int:
        """Remove every callback exported under `namespace`. Returns the count."""
        with self._lock:
            refs = [ref for ref in self._callbacks if ref.namespace == namespace]
            for ref in refs:
                del self._callbacks[ref]
        if refs:
            logger.info("[CALLBACKS] Removed %d callbacks from '%s'", len(refs), namespace)
        return len(refs)

    def names(self, namespace: str) -> list[str]:
        """Get the sorted callback names exported under `namespace`."""
        return sorted(ref.name for ref in self._callbacks if ref.namespace == namespace)

    def count(self) -> int:
        return len(self._callbacks)

    def clear(self) -> None:
        with self._lock:
            self._callbacks.clear()
