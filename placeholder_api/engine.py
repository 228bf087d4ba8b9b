"""Placeholder engine.

The engine owns one registry, callback table, dispatcher, cache and
resolver, and exposes the registration and substitution API used by
plugins. Engines are ordinary objects; `get_engine()` returns a lazily
created default instance for code that wants a shared one.

Usage:
    engine = PlaceholderEngine()

    @engine.export("JSPH", "helloPlayer")
    def hello(token, param, player):
        return f"Hello, {player.name}"

    engine.register_player_placeholder("js", "hello", "JSPH", "helloPlayer")
    engine.replace_for_player("{js:hello}", player)
"""

import logging
import re
import threading
import time
from collections.abc import Callable, Iterable, Mapping

from placeholder_api.cache import PlaceholderCache
from placeholder_api.callbacks import Callback, CallbackTable, ExportedCallback, inspect_callback
from placeholder_api.config import EngineSettings
from placeholder_api.dispatch import CallbackDispatcher
from placeholder_api.exceptions import AlreadyRegisteredError, PlaceholderError
from placeholder_api.registry import PlaceholderRegistry
from placeholder_api.resolver import Resolver
from placeholder_api.types import (
    SERVER_CONTEXT,
    CacheKeyStrategy,
    CallbackRef,
    ContextKind,
    PlaceholderContext,
    PlaceholderDefinition,
    actor_context,
    player_context,
)

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[^\s{}:]+$")


def _parse_kind(kind: ContextKind | str) -> ContextKind:
    if isinstance(kind, ContextKind):
        return kind
    try:
        return ContextKind[str(kind).strip().upper()]
    except KeyError:
        raise PlaceholderError(f"Unknown context kind '{kind}'") from None


class PlaceholderEngine:
    """Registration and substitution entry point.

    Args:
        settings: Engine settings (defaults if omitted)
        clock: Monotonic time source for cache expiry
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or EngineSettings()
        self.callbacks = CallbackTable()
        self.registry = PlaceholderRegistry()
        self._dispatcher = CallbackDispatcher(
            self.callbacks,
            timeout_seconds=self.settings.callback_timeout_seconds,
            max_workers=self.settings.max_workers,
            failure_fallback=self.settings.failure_fallback,
        )
        self.cache = PlaceholderCache(
            self._dispatcher, capacity=self.settings.cache_capacity, clock=clock
        )
        self.resolver = Resolver(self.registry, self.cache, debug_mode=self.settings.debug_mode)

    # =========================================================================
    # Callback export
    # =========================================================================

    def export_callback(self, func: Callback, namespace: str, name: str) -> ExportedCallback:
        """Export a callback function under (namespace, name).

        Raises:
            CallbackSignatureError: If the function has an unusable signature
        """
        return self.callbacks.export_callback(func, namespace, name)

    def export(self, namespace: str, name: str) -> Callable[[Callback], Callback]:
        """Decorator form of export_callback()."""
        return self.callbacks.export(namespace, name)

    # =========================================================================
    # Registration
    # =========================================================================

    def _validate(
        self, definition: PlaceholderDefinition, exported: ExportedCallback | None
    ) -> None:
        for label, value in (("namespace", definition.namespace), ("token", definition.token)):
            if not NAME_PATTERN.match(value):
                raise PlaceholderError(
                    f"Invalid {label} '{value}': must be non-empty without whitespace, ':', '{{' or '}}'"
                )
        if definition.cache_duration_seconds < 0:
            raise PlaceholderError(
                f"Cache duration for {definition.marker} must be >= 0, "
                f"got {definition.cache_duration_seconds}"
            )

        if exported is None:
            raise PlaceholderError(
                f"Callback {definition.callback_ref} for {definition.marker} is not exported"
            )
        if not exported.supports(definition.context_kind):
            raise PlaceholderError(
                f"Callback {definition.callback_ref} cannot serve a "
                f"{definition.context_kind.name} placeholder: it must accept (token, param, target)"
            )

    def register(self, definition: PlaceholderDefinition) -> None:
        """Validate and register a definition.

        Raises:
            AlreadyRegisteredError: If (namespace, token) is taken
            PlaceholderError: If the definition or its callback is invalid
        """
        self._validate(definition, self.callbacks.get(definition.callback_ref))
        self.registry.register(definition)

    def register_placeholder_by_kind(
        self,
        kind: ContextKind | str,
        namespace: str,
        token: str,
        callback_namespace: str,
        callback_name: str,
        cache_seconds: int = 0,
        *,
        cache_key_strategy: CacheKeyStrategy = CacheKeyStrategy.PER_CONTEXT,
        description: str = "",
    ) -> bool:
        """Register a placeholder bound to an exported callback.

        Args:
            kind: Context kind (ContextKind or its name, e.g. "player")
            namespace: Placeholder namespace, the part before the first ':'
            token: Placeholder token
            callback_namespace: Namespace the callback was exported under
            callback_name: Exported callback name
            cache_seconds: Cache duration in seconds (0 = no caching)
            cache_key_strategy: Cache scoping for player/actor placeholders
            description: Free-form text for introspection

        Returns:
            True on success, False if registration was refused (logged)
        """
        try:
            definition = PlaceholderDefinition(
                namespace=namespace,
                token=token,
                context_kind=_parse_kind(kind),
                callback_ref=CallbackRef(callback_namespace, callback_name),
                cache_duration_seconds=int(cache_seconds),
                cache_key_strategy=cache_key_strategy,
                description=description,
            )
            self.register(definition)
        except AlreadyRegisteredError as e:
            logger.warning("[ENGINE] Registration refused: %s", e)
            return False
        except (PlaceholderError, TypeError, ValueError) as e:
            logger.warning("[ENGINE] Registration of {%s:%s} failed: %s", namespace, token, e)
            return False

        logger.info(
            "[ENGINE] Registered %s (%s, callback=%s, cache=%ds)",
            definition.marker,
            definition.context_kind.name.lower(),
            definition.callback_ref,
            definition.cache_duration_seconds,
        )
        return True

    def register_player_placeholder(
        self,
        namespace: str,
        token: str,
        callback_namespace: str,
        callback_name: str,
        cache_seconds: int = 0,
        **kwargs,
    ) -> bool:
        """Register a placeholder evaluated against a player."""
        return self.register_placeholder_by_kind(
            ContextKind.PLAYER, namespace, token, callback_namespace, callback_name, cache_seconds, **kwargs
        )

    def register_actor_placeholder(
        self,
        namespace: str,
        token: str,
        callback_namespace: str,
        callback_name: str,
        cache_seconds: int = 0,
        **kwargs,
    ) -> bool:
        """Register a placeholder evaluated against any actor (players included)."""
        return self.register_placeholder_by_kind(
            ContextKind.ACTOR, namespace, token, callback_namespace, callback_name, cache_seconds, **kwargs
        )

    def register_server_placeholder(
        self,
        namespace: str,
        token: str,
        callback_namespace: str,
        callback_name: str,
        cache_seconds: int = 0,
        **kwargs,
    ) -> bool:
        """Register a placeholder that needs no context."""
        return self.register_placeholder_by_kind(
            ContextKind.SERVER, namespace, token, callback_namespace, callback_name, cache_seconds, **kwargs
        )

    def placeholder(
        self,
        namespace: str,
        token: str,
        kind: ContextKind | str = ContextKind.SERVER,
        cache_seconds: int = 0,
        *,
        callback_namespace: str | None = None,
        cache_key_strategy: CacheKeyStrategy = CacheKeyStrategy.PER_CONTEXT,
        description: str = "",
    ) -> Callable[[Callback], Callback]:
        """Decorator that exports a function and registers it in one step.

        The callback is exported as (callback_namespace or namespace, token).
        Unlike register_*_placeholder(), failures raise, and nothing is
        exported when the placeholder can't be registered.

        Usage:
            @engine.placeholder("srv", "clock", cache_seconds=1)
            def clock(token, param):
                return datetime.now().strftime("%H:%M")
        """
        cb_namespace = callback_namespace or namespace

        def decorator(func: Callback) -> Callback:
            definition = PlaceholderDefinition(
                namespace=namespace,
                token=token,
                context_kind=_parse_kind(kind),
                callback_ref=CallbackRef(cb_namespace, token),
                cache_duration_seconds=cache_seconds,
                cache_key_strategy=cache_key_strategy,
                description=description or (func.__doc__ or "").strip(),
            )
            # A refused placeholder leaves the callback table untouched
            if definition.key in self.registry:
                raise AlreadyRegisteredError(namespace, token)
            self._validate(definition, inspect_callback(func, cb_namespace, token))

            self.export_callback(func, cb_namespace, token)
            self.registry.register(definition)
            return func

        return decorator

    def unregister(self, namespace: str, token: str) -> bool:
        """Remove one placeholder and its cached values."""
        removed = self.registry.unregister(namespace, token)
        if removed is None:
            return False
        self.cache.invalidate(removed)
        return True

    def unregister_namespace(self, namespace: str) -> int:
        """Remove every placeholder in a namespace. Returns the count (0 if none)."""
        removed = self.registry.unregister_namespace(namespace)
        for definition in removed:
            self.cache.invalidate(definition)
        return len(removed)

    def unregister_by_callback_namespace(self, callback_namespace: str) -> bool:
        """Remove every placeholder and callback owned by a callback namespace.

        Returns:
            True if anything was removed
        """
        removed = self.registry.unregister_by_callback_namespace(callback_namespace)
        for definition in removed:
            self.cache.invalidate(definition)
        callbacks_removed = self.callbacks.remove_namespace(callback_namespace)
        logger.info(
            "[ENGINE] Unloaded '%s': %d placeholders, %d callbacks",
            callback_namespace,
            len(removed),
            callbacks_removed,
        )
        return bool(removed) or callbacks_removed > 0

    @staticmethod
    def context_kinds() -> dict[str, ContextKind]:
        """Map of context kind names accepted by register_placeholder_by_kind()."""
        return {kind.name.lower(): kind for kind in ContextKind}

    def describe(self) -> dict:
        """Listing of registered placeholders."""
        return self.registry.describe()

    # =========================================================================
    # Substitution
    # =========================================================================

    def _player_or_server(self, player, caller: str) -> PlaceholderContext:
        if player is None:
            logger.warning("[ENGINE] %s: player is None, falling back to server replace", caller)
            return SERVER_CONTEXT
        return player_context(player)

    def _actor_or_server(self, actor, caller: str) -> PlaceholderContext:
        if actor is None:
            logger.warning("[ENGINE] %s: actor is None, falling back to server replace", caller)
            return SERVER_CONTEXT
        return actor_context(actor)

    def replace_with_context(self, template: str, context: PlaceholderContext) -> str:
        """Resolve markers against an explicit context."""
        return self.resolver.replace(template, context)

    def replace(self, template: str) -> str:
        """Resolve server placeholders only."""
        return self.resolver.replace(template, SERVER_CONTEXT)

    def replace_for_player(self, template: str, player) -> str:
        """Resolve player, actor and server placeholders for `player`."""
        return self.resolver.replace(template, self._player_or_server(player, "replace_for_player"))

    def replace_for_actor(self, template: str, actor) -> str:
        """Resolve actor and server placeholders for `actor`."""
        return self.resolver.replace(template, self._actor_or_server(actor, "replace_for_actor"))

    def replace_many(self, templates: Iterable[str]) -> list[str]:
        """Server-resolve a batch of templates, preserving order."""
        return [self.resolver.replace(t, SERVER_CONTEXT) for t in templates]

    def replace_many_for_player(self, templates: Iterable[str], player) -> list[str]:
        """Player-resolve a batch of templates, preserving order."""
        context = self._player_or_server(player, "replace_many_for_player")
        return [self.resolver.replace(t, context) for t in templates]

    def replace_mapping(self, templates: Mapping[str, str]) -> dict[str, str]:
        """Server-resolve every value of a mapping; keys are untouched."""
        return {k: self.resolver.replace(v, SERVER_CONTEXT) for k, v in templates.items()}

    def replace_mapping_for_player(self, templates: Mapping[str, str], player) -> dict[str, str]:
        """Player-resolve every value of a mapping; keys are untouched."""
        context = self._player_or_server(player, "replace_mapping_for_player")
        return {k: self.resolver.replace(v, context) for k, v in templates.items()}

    async def areplace(self, template: str) -> str:
        """Async replace()."""
        return await self.resolver.areplace(template, SERVER_CONTEXT)

    async def areplace_for_player(self, template: str, player) -> str:
        """Async replace_for_player()."""
        return await self.resolver.areplace(
            template, self._player_or_server(player, "areplace_for_player")
        )

    async def areplace_for_actor(self, template: str, actor) -> str:
        """Async replace_for_actor()."""
        return await self.resolver.areplace(
            template, self._actor_or_server(actor, "areplace_for_actor")
        )

    def unresolved(self, template: str, context: PlaceholderContext = SERVER_CONTEXT) -> list[str]:
        """List markers that would stay verbatim in `context`."""
        return self.resolver.unresolved(template, context)

    # =========================================================================
    # Teardown
    # =========================================================================

    def close(self) -> None:
        """Drop all state and stop the callback worker pool."""
        self.cache.clear()
        self.registry.clear()
        self.callbacks.clear()
        self._dispatcher.shutdown()
        logger.info("[ENGINE] Closed")

    def __enter__(self) -> "PlaceholderEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# =============================================================================
# DEFAULT INSTANCE
# =============================================================================

_default_engine: PlaceholderEngine | None = None
_default_lock = threading.Lock()


def get_engine() -> PlaceholderEngine:
    """Get the shared default engine, creating it on first use."""
    global _default_engine
    with _default_lock:
        if _default_engine is None:
            _default_engine = PlaceholderEngine()
        return _default_engine


def reset_engine() -> None:
    """Close and discard the default engine (mainly for testing)."""
    global _default_engine
    with _default_lock:
        if _default_engine is not None:
            _default_engine.close()
        _default_engine = None
