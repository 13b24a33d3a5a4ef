import sys
import textwrap
from pathlib import Path

import pytest
from conftest import USER, RecordingTransport, build_dispatcher, text_event

from relaybot.core.models import CommandOptions
from relaybot.plugins.loader import PluginLoader, PluginLoadError, PluginSource


def _write_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, name: str, body: str) -> Path:
    path = tmp_path / f"{name}.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.delitem(sys.modules, name, raising=False)
    return path


GREETER = """
    from relaybot.core.models import CommandOptions


    async def hello(envelope, context):
        await context.reply(envelope, "{reply}")


    class Greeter:
        name = "greeter"

        def register(self, registry, context):
            registry.register("hello", hello, CommandOptions(category="fun"))


    plugin = Greeter()
"""


def test_parse_plugin_spec() -> None:
    assert PluginSource.parse("pkg.mod:thing") == PluginSource(name="pkg.mod:thing", module="pkg.mod", attribute="thing")
    assert PluginSource.parse("pkg.mod").attribute == "plugin"
    with pytest.raises(ValueError):
        PluginSource.parse("  ")
    with pytest.raises(ValueError):
        PluginSource.parse(":plugin")


@pytest.mark.asyncio
async def test_load_object_plugin_and_dispatch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_module(tmp_path, monkeypatch, "relaybot_test_greeter", GREETER.format(reply="hi!"))
    transport = RecordingTransport()
    dispatcher = build_dispatcher(transport=transport)
    loader = PluginLoader(dispatcher, ["relaybot_test_greeter"], include_entry_points=False)

    assert loader.load() == 1
    assert loader.loaded == ["relaybot_test_greeter"]
    assert dispatcher.get_commands("fun")[0].name == "hello"

    await dispatcher.process(text_event(".hello", chat=USER))
    assert transport.texts == ["hi!"]


def test_function_plugins_and_builtins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_module(
        tmp_path,
        monkeypatch,
        "relaybot_test_funcs",
        """
        def setup(registry, context):
            registry.register("ping", lambda envelope, ctx: None)
        """,
    )

    def builtin(registry, context):
        registry.register("about", lambda envelope, ctx: None, CommandOptions(description="About"))

    dispatcher = build_dispatcher()
    loader = PluginLoader(
        dispatcher,
        ["relaybot_test_funcs:setup"],
        include_entry_points=False,
        builtins=[builtin],
    )

    assert loader.load() == 2
    assert loader.loaded == ["builtin", "relaybot_test_funcs:setup"]
    assert [cmd.name for cmd in dispatcher.get_commands()] == ["about", "ping"]


def test_broken_plugins_are_skipped(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_module(tmp_path, monkeypatch, "relaybot_test_good", GREETER.format(reply="ok"))
    _write_module(
        tmp_path,
        monkeypatch,
        "relaybot_test_bad",
        """
        def plugin(registry, context):
            registry.register("half", lambda e, c: None)
            raise RuntimeError("plugin exploded")
        """,
    )
    dispatcher = build_dispatcher()
    loader = PluginLoader(
        dispatcher,
        ["relaybot_test_missing_module", "relaybot_test_good:nope", "relaybot_test_bad", "relaybot_test_good"],
        include_entry_points=False,
    )

    loader.load()

    assert loader.loaded == ["relaybot_test_good"]
    assert [cmd.name for cmd in dispatcher.get_commands()] == ["hello"]


def test_strict_load_keeps_previous_table(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dispatcher = build_dispatcher()
    dispatcher.register_command("existing", lambda e, c: None)
    loader = PluginLoader(dispatcher, ["relaybot_test_not_there"], include_entry_points=False, strict=True)

    with pytest.raises(PluginLoadError):
        loader.load()
    assert [cmd.name for cmd in dispatcher.get_commands()] == ["existing"]

    def failing(registry, context):
        raise ValueError("bad plugin")

    strict = PluginLoader(dispatcher, include_entry_points=False, builtins=[failing], strict=True)
    with pytest.raises(PluginLoadError):
        strict.load()
    assert [cmd.name for cmd in dispatcher.get_commands()] == ["existing"]


@pytest.mark.asyncio
async def test_reload_reimports_edited_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write_module(tmp_path, monkeypatch, "relaybot_test_reload", GREETER.format(reply="v1"))
    transport = RecordingTransport()
    dispatcher = build_dispatcher(transport=transport)
    loader = PluginLoader(dispatcher, ["relaybot_test_reload"], include_entry_points=False)
    loader.load()

    path.write_text(textwrap.dedent(GREETER.format(reply="v2")), encoding="utf-8")
    # Bust bytecode caching keyed on mtime with second resolution.
    for cached in tmp_path.glob("__pycache__/relaybot_test_reload*.pyc"):
        cached.unlink()
    loader.reload()

    await dispatcher.process(text_event(".hello"))
    assert transport.texts == ["v2"]


def test_plugin_middleware_installed_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_module(
        tmp_path,
        monkeypatch,
        "relaybot_test_mw",
        """
        def audit(envelope, context):
            return None


        class Audited:
            name = "audited"
            middleware = [audit]

            def register(self, registry, context):
                registry.register("x", lambda e, c: None)


        plugin = Audited()
        """,
    )
    dispatcher = build_dispatcher()
    loader = PluginLoader(dispatcher, ["relaybot_test_mw"], include_entry_points=False)

    loader.load()
    loader.reload()

    assert dispatcher.get_stats()["middlewares_registered"] == 1


def test_aborted_strict_load_installs_no_middleware() -> None:
    class Audited:
        name = "audited"
        middleware = [lambda envelope, context: None]

        def register(self, registry, context):
            registry.register("audit", lambda e, c: None)

    def failing(registry, context):
        raise ValueError("bad plugin")

    dispatcher = build_dispatcher()
    loader = PluginLoader(dispatcher, include_entry_points=False, builtins=[Audited(), failing], strict=True)

    with pytest.raises(PluginLoadError):
        loader.load()

    assert dispatcher.get_stats()["middlewares_registered"] == 0
    assert dispatcher.get_commands() == []
    assert loader.loaded == []


def test_entry_points_are_discovered(monkeypatch: pytest.MonkeyPatch) -> None:
    from importlib.metadata import EntryPoint

    def builtin_ep(registry, context):
        registry.register("from_ep", lambda e, c: None)

    module = type(sys)("relaybot_test_ep")
    module.plugin = builtin_ep
    monkeypatch.setitem(sys.modules, "relaybot_test_ep", module)
    monkeypatch.setattr(
        "relaybot.plugins.loader.entry_points",
        lambda group: [EntryPoint(name="ep", value="relaybot_test_ep", group=group)],
    )

    dispatcher = build_dispatcher()
    loader = PluginLoader(dispatcher)
    loader.load()

    assert loader.loaded == ["ep"]
    assert [cmd.name for cmd in dispatcher.get_commands()] == ["from_ep"]
