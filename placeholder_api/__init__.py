"""Placeholder engine.

Register placeholder tokens under a namespace and substitute
`{namespace:token[:param]}` markers in template strings.

Usage:
    from placeholder_api import PlaceholderEngine

    engine = PlaceholderEngine()

    @engine.placeholder("srv", "clock", cache_seconds=1)
    def clock(token, param):
        return datetime.now().strftime("%H:%M")

    engine.replace("time={srv:clock}")

Markers that can't be resolved are left verbatim in the output.
"""

from placeholder_api.cache import PlaceholderCache
from placeholder_api.callbacks import CallbackTable, ExportedCallback
from placeholder_api.config import EngineSettings, load_settings, save_settings
from placeholder_api.dispatch import CallbackDispatcher, DispatchResult
from placeholder_api.engine import PlaceholderEngine, get_engine, reset_engine
from placeholder_api.exceptions import (
    AlreadyRegisteredError,
    CallbackError,
    CallbackSignatureError,
    CallbackTimeoutError,
    ConfigError,
    PlaceholderError,
)
from placeholder_api.registry import PlaceholderRegistry
from placeholder_api.resolver import Resolver, find_markers
from placeholder_api.scheduler import AsyncioScheduler, CancelHandle, Scheduler, ThreadScheduler
from placeholder_api.types import (
    SERVER_CONTEXT,
    CacheKeyStrategy,
    CallbackRef,
    ContextKind,
    Marker,
    PlaceholderContext,
    PlaceholderDefinition,
    actor_context,
    player_context,
)

__all__ = [
    # Main API
    "PlaceholderEngine",
    "get_engine",
    "reset_engine",
    # Components
    "CallbackDispatcher",
    "CallbackTable",
    "DispatchResult",
    "ExportedCallback",
    "PlaceholderCache",
    "PlaceholderRegistry",
    "Resolver",
    "find_markers",
    # Scheduling
    "AsyncioScheduler",
    "CancelHandle",
    "Scheduler",
    "ThreadScheduler",
    # Types
    "SERVER_CONTEXT",
    "CacheKeyStrategy",
    "CallbackRef",
    "ContextKind",
    "Marker",
    "PlaceholderContext",
    "PlaceholderDefinition",
    "actor_context",
    "player_context",
    # Settings
    "EngineSettings",
    "load_settings",
    "save_settings",
    # Errors
    "AlreadyRegisteredError",
    "CallbackError",
    "CallbackSignatureError",
    "CallbackTimeoutError",
    "ConfigError",
    "PlaceholderError",
]
