"""Core types for the placeholder engine.

All data structures are dataclasses with attribute access.
Definitions are frozen once created; contexts are cheap value objects
built per substitution call.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class ContextKind(Enum):
    """The category of runtime object a placeholder is evaluated against."""

    PLAYER = auto()  # online player
    ACTOR = auto()  # any entity, players included
    SERVER = auto()  # no context object

    def accepts(self, supplied: "ContextKind") -> bool:
        """Check whether a placeholder of this kind can run in a `supplied` call.

        Server placeholders need no context and run everywhere. Actor
        placeholders also run for players, since every player is an actor.
        """
        if self is ContextKind.SERVER:
            return True
        if self is ContextKind.ACTOR:
            return supplied in (ContextKind.ACTOR, ContextKind.PLAYER)
        return supplied is ContextKind.PLAYER


class CacheKeyStrategy(Enum):
    """How cached values are scoped for context-bound placeholders."""

    PER_CONTEXT = auto()  # one entry per player/actor instance
    SHARED = auto()  # one entry for every context


# Identity used for server-scoped cache entries
SERVER_IDENTITY = "<server>"


@dataclass(frozen=True)
class CallbackRef:
    """Identifies an exported callback by namespace and name."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}::{self.name}"


@dataclass(frozen=True)
class PlaceholderDefinition:
    """Complete definition of a registered placeholder."""

    namespace: str
    token: str
    context_kind: ContextKind
    callback_ref: CallbackRef
    cache_duration_seconds: int = 0
    cache_key_strategy: CacheKeyStrategy = CacheKeyStrategy.PER_CONTEXT
    description: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.token)

    @property
    def marker(self) -> str:
        """The bare marker text, e.g. '{js:hello}'."""
        return "{" + f"{self.namespace}:{self.token}" + "}"

    @property
    def is_cacheable(self) -> bool:
        return self.cache_duration_seconds > 0


@dataclass(frozen=True)
class PlaceholderContext:
    """The object a substitution call is evaluated against.

    Attributes:
        kind: Context kind of the call
        target: Host object handed to callbacks (None for server calls)
        identity: Stable key used to scope cache entries
    """

    kind: ContextKind
    target: Any = field(default=None, compare=False)
    identity: str = SERVER_IDENTITY


SERVER_CONTEXT = PlaceholderContext(kind=ContextKind.SERVER)


def context_identity(target: Any) -> str:
    """Get a stable identity for a host object.

    Prefers the object's `unique_id` attribute (game entities carry one),
    falling back to the Python object id.
    """
    unique_id = getattr(target, "unique_id", None)
    if unique_id is not None:
        return str(unique_id)
    return f"obj-{id(target)}"


def player_context(player: Any) -> PlaceholderContext:
    """Build a player context."""
    return PlaceholderContext(ContextKind.PLAYER, player, context_identity(player))


def actor_context(actor: Any) -> PlaceholderContext:
    """Build an actor context."""
    return PlaceholderContext(ContextKind.ACTOR, actor, context_identity(actor))


@dataclass(frozen=True)
class Marker:
    """A parsed `{namespace:token[:param]}` marker found in a template."""

    text: str
    namespace: str
    token: str
    param: str | None
    start: int
    end: int

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.namespace, self.token, self.param)
