"""Placeholder registry.

Holds every registered PlaceholderDefinition keyed by (namespace, token).
Writers take a lock and swap in a new mapping; readers use whichever
mapping is current, so a lookup never observes a half-applied change.
"""

import logging
import threading
from collections.abc import Iterable

from placeholder_api.exceptions import AlreadyRegisteredError
from placeholder_api.types import ContextKind, PlaceholderDefinition

logger = logging.getLogger(__name__)

# Display labels for introspection output
KIND_DISPLAY = {
    ContextKind.PLAYER: "Player",
    ContextKind.ACTOR: "Actor",
    ContextKind.SERVER: "Server",
}

Key = tuple[str, str]


class PlaceholderRegistry:
    """Registry of placeholder definitions.

    Usage:
        registry = PlaceholderRegistry()
        registry.register(definition)
        registry.lookup("js", "hello")
        registry.unregister_namespace("js")
    """

    def __init__(self) -> None:
        self._definitions: dict[Key, PlaceholderDefinition] = {}
        self._lock = threading.Lock()

    def register(self, definition: PlaceholderDefinition) -> None:
        """Register a placeholder definition.

        Raises:
            AlreadyRegisteredError: If (namespace, token) is taken
        """
        with self._lock:
            if definition.key in self._definitions:
                raise AlreadyRegisteredError(definition.namespace, definition.token)
            updated = dict(self._definitions)
            updated[definition.key] = definition
            self._definitions = updated
        logger.debug(
            "[REGISTRY] Registered %s kind=%s callback=%s cache=%ds",
            definition.marker,
            definition.context_kind.name,
            definition.callback_ref,
            definition.cache_duration_seconds,
        )

    def unregister(self, namespace: str, token: str) -> PlaceholderDefinition | None:
        """Remove a single placeholder. Returns the removed definition."""
        with self._lock:
            if (namespace, token) not in self._definitions:
                return None
            updated = dict(self._definitions)
            removed = updated.pop((namespace, token))
            self._definitions = updated
        logger.debug("[REGISTRY] Unregistered %s", removed.marker)
        return removed

    def unregister_namespace(self, namespace: str) -> list[PlaceholderDefinition]:
        """Remove every placeholder in a namespace.

        Safe to call when nothing matches.

        Returns:
            The removed definitions (empty list if none)
        """
        return self._remove_where(lambda d: d.namespace == namespace, f"namespace={namespace}")

    def unregister_by_callback_namespace(
        self, callback_namespace: str
    ) -> list[PlaceholderDefinition]:
        """Remove every placeholder whose callback lives in `callback_namespace`."""
        return self._remove_where(
            lambda d: d.callback_ref.namespace == callback_namespace,
            f"callback_namespace={callback_namespace}",
        )

    def _remove_where(self, predicate, label: str) -> list[PlaceholderDefinition]:
        with self._lock:
            removed = [d for d in self._definitions.values() if predicate(d)]
            if removed:
                self._definitions = {
                    k: d for k, d in self._definitions.items() if not predicate(d)
                }
        if removed:
            logger.info("[REGISTRY] Removed %d placeholders (%s)", len(removed), label)
        return removed

    def lookup(self, namespace: str, token: str) -> PlaceholderDefinition | None:
        """Get a placeholder definition, or None if unknown."""
        return self._definitions.get((namespace, token))

    def __contains__(self, key: Key) -> bool:
        return key in self._definitions

    def all_definitions(self) -> list[PlaceholderDefinition]:
        """Get all registered definitions."""
        return list(self._definitions.values())

    def by_namespace(self, namespace: str) -> list[PlaceholderDefinition]:
        """Get all definitions in a namespace."""
        return [d for d in self._definitions.values() if d.namespace == namespace]

    def by_kind(self, kind: ContextKind) -> list[PlaceholderDefinition]:
        """Get all definitions bound to a context kind."""
        return [d for d in self._definitions.values() if d.context_kind is kind]

    def namespaces(self) -> list[str]:
        """Get the sorted list of namespaces in use."""
        return sorted({d.namespace for d in self._definitions.values()})

    def count(self) -> int:
        """Get total number of registered placeholders."""
        return len(self._definitions)

    def clear(self) -> None:
        """Remove every definition."""
        with self._lock:
            self._definitions = {}

    def describe(self, definitions: Iterable[PlaceholderDefinition] | None = None) -> dict:
        """Build a listing of registered placeholders for tooling and debug output.

        Entries are sorted by namespace then token for consistent output.
        """
        if definitions is None:
            definitions = self._definitions.values()

        entries = [
            {
                "placeholder": d.marker,
                "namespace": d.namespace,
                "token": d.token,
                "context": KIND_DISPLAY.get(d.context_kind, d.context_kind.name.title()),
                "callback": str(d.callback_ref),
                "cache_seconds": d.cache_duration_seconds,
                "description": d.description,
            }
            for d in definitions
        ]
        entries.sort(key=lambda e: (e["namespace"], e["token"]))

        return {
            "total_placeholders": len(entries),
            "namespaces": sorted({e["namespace"] for e in entries}),
            "placeholders": entries,
        }
