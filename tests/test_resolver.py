"""Tests for marker scanning and template substitution."""

import pytest

from placeholder_api import (
    SERVER_CONTEXT,
    ContextKind,
    PlaceholderContext,
    actor_context,
    find_markers,
    player_context,
)
from placeholder_api.plugins import Actor, Player

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def alice():
    return Player(unique_id="p-1", name="Alice")


@pytest.fixture
def greeter(engine):
    """Engine with {player:name}, {srv:clock}, {ent:kind} and an echo placeholder."""
    engine.export_callback(lambda token, param, player: player.name, "T", "name")
    engine.export_callback(lambda token, param: "12:00", "T", "clock")
    engine.export_callback(lambda token, param, actor: type(actor).__name__, "T", "kind")
    engine.export_callback(lambda token, param: f"<{param}>", "T", "echo")
    assert engine.register_player_placeholder("player", "name", "T", "name")
    assert engine.register_server_placeholder("srv", "clock", "T", "clock")
    assert engine.register_actor_placeholder("ent", "kind", "T", "kind")
    assert engine.register_server_placeholder("ex", "echo", "T", "echo")
    return engine


class TestFindMarkers:
    def test_marker_without_param(self):
        (marker,) = find_markers("a {ns:tok} b")
        assert (marker.namespace, marker.token, marker.param) == ("ns", "tok", None)
        assert marker.text == "{ns:tok}"
        assert (marker.start, marker.end) == (2, 10)

    def test_param_keeps_colons(self):
        (marker,) = find_markers("{ns:tok:a:b:c}")
        assert marker.param == "a:b:c"

    def test_empty_param(self):
        (marker,) = find_markers("{ns:tok:}")
        assert marker.param == ""

    @pytest.mark.parametrize(
        "template",
        [
            "{ns:tok",  # no closing brace
            "{nstok}",  # no namespace separator
            "{:tok}",  # empty namespace
            "{ns:}",  # empty token
            "{ns:to k}",  # whitespace in token
            "{}",
            "plain text",
        ],
    )
    def test_malformed_markers_are_ignored(self, template):
        assert find_markers(template) == []

    def test_first_closing_brace_ends_marker(self):
        markers = find_markers("{ns:tok:a}b}")
        assert [m.text for m in markers] == ["{ns:tok:a}"]

    def test_markers_in_scan_order(self):
        markers = find_markers("{a:x} {b:y:1} {c:z}")
        assert [m.namespace for m in markers] == ["a", "b", "c"]


class TestReplace:
    def test_template_without_markers_is_unchanged(self, greeter, alice):
        for template in ["", "hello", "braces { } but no markers", "{not a marker}"]:
            assert greeter.resolver.replace(template, player_context(alice)) == template

    def test_scenario_player_and_server_placeholders(self, greeter, alice):
        result = greeter.replace_for_player("Hi {player:name}, time={srv:clock}", alice)
        assert result == "Hi Alice, time=12:00"

    def test_callback_value_is_substituted_literally(self, greeter):
        assert greeter.replace("{ex:echo:x}") == "<x>"
        assert greeter.replace("{ex:echo}") == "<>"

    def test_param_with_colon_is_passed_verbatim(self, greeter):
        assert greeter.replace("{ex:echo:12:30:45}") == "<12:30:45>"

    def test_unknown_placeholder_left_verbatim(self, greeter):
        assert greeter.replace("x {ex:missing} y") == "x {ex:missing} y"

    def test_unterminated_marker_left_verbatim(self, greeter):
        assert greeter.replace("time={srv:clock") == "time={srv:clock"

    def test_surrounding_text_preserved_exactly(self, greeter):
        template = "  {{srv:clock}}\n\t{srv:clock}end"
        assert greeter.replace(template) == "  {12:00}\n\t12:00end"

    def test_bad_marker_does_not_affect_the_rest(self, greeter):
        result = greeter.replace("{ex:nope} {srv:clock} {srv:clock")
        assert result == "{ex:nope} 12:00 {srv:clock"

    def test_player_placeholder_in_server_call_left_verbatim(self, greeter):
        assert greeter.replace("Hi {player:name}") == "Hi {player:name}"

    def test_player_placeholder_in_actor_call_left_verbatim(self, greeter):
        zombie = Actor(unique_id="a-1", name="Zombie")
        assert greeter.replace_for_actor("{player:name}", zombie) == "{player:name}"

    def test_actor_placeholder_resolves_for_players(self, greeter, alice):
        assert greeter.replace_for_player("{ent:kind}", alice) == "Player"
        zombie = Actor(unique_id="a-1")
        assert greeter.replace_for_actor("{ent:kind}", zombie) == "Actor"

    def test_none_player_falls_back_to_server(self, greeter):
        assert greeter.replace_for_player("{player:name} {srv:clock}", None) == "{player:name} 12:00"


class TestContextKindAcceptance:
    @pytest.mark.parametrize(
        "placeholder_kind, call_kind, expected",
        [
            (ContextKind.SERVER, ContextKind.SERVER, True),
            (ContextKind.SERVER, ContextKind.PLAYER, True),
            (ContextKind.SERVER, ContextKind.ACTOR, True),
            (ContextKind.ACTOR, ContextKind.ACTOR, True),
            (ContextKind.ACTOR, ContextKind.PLAYER, True),
            (ContextKind.ACTOR, ContextKind.SERVER, False),
            (ContextKind.PLAYER, ContextKind.PLAYER, True),
            (ContextKind.PLAYER, ContextKind.ACTOR, False),
            (ContextKind.PLAYER, ContextKind.SERVER, False),
        ],
    )
    def test_accepts(self, placeholder_kind, call_kind, expected):
        assert placeholder_kind.accepts(call_kind) is expected


class TestDuplicateMarkers:
    def test_identical_markers_resolve_once_per_call(self, engine, counter):
        engine.export_callback(counter, "T", "count")
        engine.register_server_placeholder("ex", "count", "T", "count")

        assert engine.replace("{ex:count} {ex:count}") == "1 1"
        assert engine.replace("{ex:count}") == "2"
        assert counter.calls == 2


class TestUnresolved:
    def test_lists_unknown_and_mismatched(self, greeter, alice):
        template = "{player:name} {srv:clock} {ex:missing}"
        assert greeter.unresolved(template) == ["{player:name}", "{ex:missing}"]
        assert greeter.unresolved(template, player_context(alice)) == ["{ex:missing}"]


class TestContexts:
    def test_identity_prefers_unique_id(self, alice):
        assert player_context(alice).identity == "p-1"

    def test_identity_falls_back_to_object_id(self):
        target = object()
        assert actor_context(target).identity == f"obj-{id(target)}"

    def test_server_context(self):
        assert SERVER_CONTEXT == PlaceholderContext(ContextKind.SERVER)
        assert SERVER_CONTEXT.target is None
