"""Template resolution.

Scans templates for `{namespace:token}` and `{namespace:token:param}`
markers and substitutes resolved values. Text that is not a well-formed
marker is copied through unchanged, and markers that cannot be resolved
(unknown placeholder, wrong context kind) stay verbatim so callers can
spot them in the output.

Marker rules:
- namespace and token are non-empty and contain no whitespace, ':', '{' or '}'
- the param is everything after the second ':' up to the closing '}'
  (it may contain ':' and may be empty)
- the first '}' after a '{' closes the marker; braces do not nest
"""

import logging
import re

from placeholder_api.cache import PlaceholderCache
from placeholder_api.registry import PlaceholderRegistry
from placeholder_api.types import (
    SERVER_CONTEXT,
    Marker,
    PlaceholderContext,
    PlaceholderDefinition,
)
from placeholder_api.utilities.logging import truncate_for_log

logger = logging.getLogger(__name__)

MARKER_PATTERN = re.compile(r"\{([^\s{}:]+):([^\s{}:]+)(?::([^{}]*))?\}")


def _to_marker(match: re.Match) -> Marker:
    return Marker(
        text=match.group(0),
        namespace=match.group(1),
        token=match.group(2),
        param=match.group(3),
        start=match.start(),
        end=match.end(),
    )


def find_markers(template: str) -> list[Marker]:
    """List the well-formed markers in a template, in scan order."""
    return [_to_marker(m) for m in MARKER_PATTERN.finditer(template)]


class Resolver:
    """Substitutes placeholder markers in template strings.

    Usage:
        resolver = Resolver(registry, cache)
        resolver.replace("Hi {player:name}", player_context(player))
    """

    def __init__(
        self,
        registry: PlaceholderRegistry,
        cache: PlaceholderCache,
        debug_mode: bool = False,
    ):
        self._registry = registry
        self._cache = cache
        self._debug_mode = debug_mode

    def _report_unresolved(self, marker: Marker, reason: str) -> None:
        if self._debug_mode:
            logger.warning("[RESOLVER] Leaving %s unresolved: %s", marker.text, reason)
        else:
            logger.debug("[RESOLVER] Leaving %s unresolved: %s", marker.text, reason)

    def match_definition(
        self, marker: Marker, context: PlaceholderContext
    ) -> PlaceholderDefinition | None:
        """Find the definition that should resolve `marker` in `context`.

        Returns None for unknown placeholders and context-kind mismatches.
        """
        definition = self._registry.lookup(marker.namespace, marker.token)
        if definition is None:
            self._report_unresolved(marker, "unknown placeholder")
            return None
        if not definition.context_kind.accepts(context.kind):
            self._report_unresolved(
                marker,
                f"needs {definition.context_kind.name} context, got {context.kind.name}",
            )
            return None
        return definition

    def _resolve_marker(self, marker: Marker, context: PlaceholderContext) -> str:
        definition = self.match_definition(marker, context)
        if definition is None:
            return marker.text
        try:
            return self._cache.resolve(definition, context, marker.param or "", marker.text)
        except Exception:
            logger.exception("[RESOLVER] Unexpected error resolving %s", marker.text)
            return marker.text

    async def _aresolve_marker(self, marker: Marker, context: PlaceholderContext) -> str:
        definition = self.match_definition(marker, context)
        if definition is None:
            return marker.text
        try:
            return await self._cache.aresolve(
                definition, context, marker.param or "", marker.text
            )
        except Exception:
            logger.exception("[RESOLVER] Unexpected error resolving %s", marker.text)
            return marker.text

    def replace(self, template: str, context: PlaceholderContext = SERVER_CONTEXT) -> str:
        """Resolve every marker in `template`.

        Identical markers within one call are resolved once and reused.
        Never raises on resolution problems.
        """
        if "{" not in template:
            return template

        resolved: dict[tuple, str] = {}

        def substitute(match: re.Match) -> str:
            marker = _to_marker(match)
            if marker.key not in resolved:
                resolved[marker.key] = self._resolve_marker(marker, context)
            return resolved[marker.key]

        result = MARKER_PATTERN.sub(substitute, template)
        logger.debug(
            "[RESOLVER] %s -> %s", truncate_for_log(template), truncate_for_log(result)
        )
        return result

    async def areplace(
        self, template: str, context: PlaceholderContext = SERVER_CONTEXT
    ) -> str:
        """Async counterpart of replace(); markers are awaited in scan order."""
        if "{" not in template:
            return template

        resolved: dict[tuple, str] = {}
        parts: list[str] = []
        pos = 0
        for match in MARKER_PATTERN.finditer(template):
            marker = _to_marker(match)
            parts.append(template[pos : marker.start])
            if marker.key not in resolved:
                resolved[marker.key] = await self._aresolve_marker(marker, context)
            parts.append(resolved[marker.key])
            pos = marker.end
        parts.append(template[pos:])
        return "".join(parts)

    def unresolved(
        self, template: str, context: PlaceholderContext = SERVER_CONTEXT
    ) -> list[str]:
        """List marker texts that would be left verbatim in `context`.

        Only checks registration and context kind; callbacks are not run.
        """
        missing = []
        for marker in find_markers(template):
            definition = self._registry.lookup(marker.namespace, marker.token)
            if definition is None or not definition.context_kind.accepts(context.kind):
                missing.append(marker.text)
        return missing
