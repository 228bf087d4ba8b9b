"""Tests for the exported callback table and signature checks."""

import pytest

from placeholder_api import CallbackRef, CallbackSignatureError, CallbackTable, ContextKind


@pytest.fixture
def table():
    return CallbackTable()


class TestExport:
    def test_decorator_exports_and_returns_function(self, table):
        @table.export("JSPH", "hello")
        def hello(token, param, player):
            return "hi"

        exported = table.get(CallbackRef("JSPH", "hello"))
        assert exported.func is hello
        assert exported.takes_target
        assert not exported.takes_two
        assert not exported.is_async

    def test_two_argument_callback_is_server_only(self, table):
        exported = table.export_callback(lambda token, param: "", "NS", "clock")
        assert exported.supports(ContextKind.SERVER)
        assert not exported.supports(ContextKind.PLAYER)
        assert exported.build_args("clock", "", None, ContextKind.SERVER) == ("clock", "")

    def test_optional_target_serves_every_kind(self, table):
        exported = table.export_callback(lambda token, param, target=None: "", "NS", "any")
        assert all(exported.supports(kind) for kind in ContextKind)
        # Server calls use the short form when available
        assert exported.build_args("any", "p", None, ContextKind.SERVER) == ("any", "p")
        assert exported.build_args("any", "p", "obj", ContextKind.ACTOR) == ("any", "p", "obj")

    def test_varargs_accepted(self, table):
        exported = table.export_callback(lambda *args: "", "NS", "var")
        assert exported.takes_two and exported.takes_target

    def test_async_detected(self, table):
        async def coro(token, param):
            return ""

        assert table.export_callback(coro, "NS", "coro").is_async

    def test_bound_method(self, table):
        class Plugin:
            def name(self, token, param, player):
                return player.name

        exported = table.export_callback(Plugin().name, "NS", "name")
        assert exported.takes_target

    @pytest.mark.parametrize(
        "func",
        [
            lambda: "",
            lambda token: "",
            lambda a, b, c, d: "",
            lambda token, param, *, required: "",
        ],
    )
    def test_unusable_signatures_rejected(self, table, func):
        with pytest.raises(CallbackSignatureError):
            table.export_callback(func, "NS", "bad")

    def test_not_callable_rejected(self, table):
        with pytest.raises(CallbackSignatureError):
            table.export_callback("not a function", "NS", "bad")

    def test_reexport_overwrites(self, table):
        table.export_callback(lambda t, p: "a", "NS", "x")
        table.export_callback(lambda t, p: "b", "NS", "x")
        assert table.count() == 1
        assert table.get(CallbackRef("NS", "x")).func("x", "") == "b"


class TestRemoval:
    def test_remove_namespace(self, table):
        table.export_callback(lambda t, p: "", "A", "one")
        table.export_callback(lambda t, p: "", "A", "two")
        table.export_callback(lambda t, p: "", "B", "one")

        assert table.remove_namespace("A") == 2
        assert table.remove_namespace("A") == 0
        assert table.names("A") == []
        assert table.names("B") == ["one"]

    def test_remove_single(self, table):
        table.export_callback(lambda t, p: "", "A", "one")
        assert table.remove(CallbackRef("A", "one"))
        assert not table.remove(CallbackRef("A", "one"))
