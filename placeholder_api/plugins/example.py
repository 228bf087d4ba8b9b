"""Example plugin: custom placeholders and a per-player sidebar.

Exports callbacks under the JSPH namespace, registers a few placeholders
against them, and refreshes every online player's sidebar once a second.
Rendering the sidebar is the host's job; this plugin only keeps the
resolved lines per player.

Registered placeholders:
- {player:name}           player name
- {js:hello[:extra]}      greeting for the player, with optional suffix
- {js:server_time}        current server time
- {js:actor_pos}          actor coordinates (cached 5s per actor)
- {js:cached_server_time} server time (cached 5s)
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from placeholder_api.engine import PlaceholderEngine
from placeholder_api.scheduler import CancelHandle, Scheduler

logger = logging.getLogger(__name__)

CALLBACK_NAMESPACE = "JSPH"
REFRESH_INTERVAL_MS = 1000
POSITION_CACHE_SECONDS = 5
SERVER_TIME_CACHE_SECONDS = 5

SIDEBAR_TEMPLATES = [
    "Player: {player:name}",
    "Position: {js:actor_pos}",
    "Time: {js:cached_server_time}",
]

WELCOME_TEMPLATE = (
    "Welcome, {player:name}! Server time: {js:server_time}, "
    "greeting: {js:hello:welcome back} {js:actor_pos}, cached time: {js:cached_server_time}"
)


# =============================================================================
# HOST OBJECTS
# =============================================================================


@dataclass
class Vec3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class Actor:
    """Minimal game entity handed to actor callbacks."""

    unique_id: str
    name: str = ""
    pos: Vec3 = field(default_factory=Vec3)


@dataclass
class Player(Actor):
    """Online player; players are actors."""


# =============================================================================
# PLUGIN
# =============================================================================


class ExamplePlugin:
    """Demonstrates registering placeholders and refreshing a sidebar.

    Args:
        engine: Engine to register with
        scheduler: Scheduler driving the sidebar refresh
        get_online_players: Returns the players currently online
        now: Clock for the server time placeholders
    """

    def __init__(
        self,
        engine: PlaceholderEngine,
        scheduler: Scheduler,
        get_online_players: Callable[[], list[Player]],
        now: Callable[[], datetime] = datetime.now,
    ):
        self._engine = engine
        self._scheduler = scheduler
        self._get_online_players = get_online_players
        self._now = now
        self._refresh_handle: CancelHandle | None = None
        self.sidebars: dict[str, list[str]] = {}

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def _player_name(self, token: str, param: str, player: Player) -> str:
        return player.name if player else "Unknown player"

    def _hello_player(self, token: str, param: str, player: Player) -> str:
        extra = f" ({param})" if param else ""
        name = player.name if player else "Unknown player"
        return f"Hello, {name}{extra}"

    def _server_time(self, token: str, param: str) -> str:
        return f"Server time: {self._now():%Y-%m-%d %H:%M:%S}"

    def _cached_server_time(self, token: str, param: str) -> str:
        return f"Cached server time: {self._now():%Y-%m-%d %H:%M:%S}"

    def _actor_pos(self, token: str, param: str, actor: Actor) -> str:
        if not actor:
            return "No actor"
        pos = actor.pos
        return f"Position({pos.x:.1f}, {pos.y:.1f}, {pos.z:.1f})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """Export callbacks, register placeholders and start the refresh.

        Returns:
            True if every placeholder registered
        """
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None

        engine = self._engine
        for name, func in (
            ("playerName", self._player_name),
            ("helloPlayer", self._hello_player),
            ("serverTime", self._server_time),
            ("cachedServerTime", self._cached_server_time),
            ("actorPos", self._actor_pos),
        ):
            engine.export_callback(func, CALLBACK_NAMESPACE, name)

        results = [
            engine.register_player_placeholder("player", "name", CALLBACK_NAMESPACE, "playerName"),
            engine.register_player_placeholder("js", "hello", CALLBACK_NAMESPACE, "helloPlayer"),
            engine.register_server_placeholder("js", "server_time", CALLBACK_NAMESPACE, "serverTime"),
            engine.register_actor_placeholder(
                "js", "actor_pos", CALLBACK_NAMESPACE, "actorPos", POSITION_CACHE_SECONDS
            ),
            engine.register_server_placeholder(
                "js",
                "cached_server_time",
                CALLBACK_NAMESPACE,
                "cachedServerTime",
                SERVER_TIME_CACHE_SECONDS,
            ),
        ]
        ok = all(results)
        if ok:
            logger.info(
                "[PLUGIN] Registered placeholders: {player:name} / {js:hello} / "
                "{js:server_time} / {js:actor_pos} / {js:cached_server_time} (cached)"
            )
        else:
            logger.error("[PLUGIN] Failed to register placeholders, see earlier log lines: %s", results)

        self._refresh_handle = self._scheduler.schedule_periodic(
            REFRESH_INTERVAL_MS, self.refresh_all, name="sidebar-refresh"
        )
        logger.info("[PLUGIN] Example plugin loaded, refreshing sidebars every %dms", REFRESH_INTERVAL_MS)
        return ok

    def unload(self) -> bool:
        """Stop the refresh and remove everything registered under JSPH."""
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None
        ok = self._engine.unregister_by_callback_namespace(CALLBACK_NAMESPACE)
        self.sidebars.clear()
        logger.info("[PLUGIN] Unregistered placeholders under '%s': %s", CALLBACK_NAMESPACE, ok)
        return ok

    # -------------------------------------------------------------------------
    # Sidebar
    # -------------------------------------------------------------------------

    def update(self, player: Player) -> list[str]:
        """Resolve and store the sidebar lines for one player."""
        lines = self._engine.replace_many_for_player(SIDEBAR_TEMPLATES, player)
        self.sidebars[player.unique_id] = lines
        logger.debug("[PLUGIN] Sidebar for %s: %s", player.name, lines)
        return lines

    def refresh_all(self) -> None:
        """Refresh the sidebar of every online player."""
        for player in self._get_online_players():
            self.update(player)

    def on_join(self, player: Player) -> str:
        """Build the welcome message for a joining player and draw their sidebar."""
        message = self._engine.replace_for_player(WELCOME_TEMPLATE, player)
        logger.info("[PLUGIN] Sent welcome message to %s: %s", player.name, message)
        self.update(player)
        return message
