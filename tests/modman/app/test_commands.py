# tests/modman/app/test_commands.py
from __future__ import annotations
import json

import pytest
import pytest_asyncio

from modman.app import commands
from modman.app.context import AppContext
from modman.app.settings import Config, loadConfig
from modman.core.errors import MalformedDataError, NotFoundError
from modman.events import ConfigReloaded, LogUpdated, ModWarningsShown, OwmlConfigReloaded
from modman.logs import SocketMessage, SocketMessageType
from modman.logs.game import PendingWarning
from modman.mods import RemoteDatabase, RemoteMod
from modman.progress import ProgressBar


@pytest_asyncio.fixture()
async def ctx(owml_dir, tmp_path):
    context = AppContext.create(Config(owmlPath=str(owml_dir)), settingsPath=tmp_path / "settings.json")
    yield context
    await context.aclose()


@pytest.mark.asyncio
async def test_local_mods_list_errors_first(ctx, write_mod):
    write_mod("Zeta.Fine", name="Zeta", enabled=True)
    write_mod("Alpha.Broken", name="Alpha", dependencies=["Missing.Dep"], enabled=True)
    write_mod("Beta.Off", name="Beta", enabled=False)
    await commands.refreshLocalDb(ctx)

    names = [entry.uniqueName for entry in await commands.getLocalMods(ctx)]
    assert names == ["Alpha.Broken", "Beta.Off", "Zeta.Fine"]
    assert [entry.uniqueName for entry in await commands.getLocalMods(ctx, "zeta")] == ["Zeta.Fine"]
    assert await commands.dbHasIssues(ctx)


@pytest.mark.asyncio
async def test_remote_mods_sorted_by_downloads_without_loader(ctx):
    ctx.remoteDb.set(RemoteDatabase({
        name: RemoteMod(uniqueName=name, name=name, version="1", downloadUrl="https://x.test/a.zip", downloadCount=count)
        for name, count in (("Low", 1), ("High", 100), ("Alek.OWML", 1000))
    }))
    assert [remoteMod.uniqueName for remoteMod in await commands.getRemoteMods(ctx)] == ["High", "Low"]
    with pytest.raises(NotFoundError):
        await commands.getRemoteMod(ctx, "Nope")


@pytest.mark.asyncio
async def test_toggle_command_refreshes_database(ctx, write_mod):
    write_mod("A", dependencies=["B"], enabled=False)
    write_mod("B", enabled=False)
    await commands.refreshLocalDb(ctx)

    result = await commands.toggleModCommand(ctx, "A", True, recursive=True)

    assert result.changed == ["A", "B"]
    localMod = await commands.getLocalMod(ctx, "B")
    assert localMod.enabled is True
    assert await commands.modHasDisabledDeps(ctx, "A") is False


@pytest.mark.asyncio
async def test_save_config_validates_persists_and_notifies(ctx, tmp_path):
    seen: list[object] = []
    ctx.bus.addListener(lambda event: seen.append(event) if isinstance(event, ConfigReloaded) else None)

    saved = await commands.saveConfigCommand(ctx, {"maxConcurrentDownloads": 2, "http": {"retries": 0}})

    assert saved.maxConcurrentDownloads == 2
    assert saved.http.timeoutMs == 30_000
    assert (await commands.getConfig(ctx)) == saved
    assert loadConfig(tmp_path / "settings.json") == saved
    assert len(seen) == 1

    with pytest.raises(MalformedDataError):
        await commands.saveConfigCommand(ctx, {"maxConcurrentDownloads": "lots"})
    assert (await commands.getConfig(ctx)).maxConcurrentDownloads == 2


@pytest.mark.asyncio
async def test_export_then_import_restores_enabled_set(ctx, write_mod, tmp_path):
    write_mod("A", enabled=True)
    write_mod("B", enabled=True)
    write_mod("C", enabled=False)
    await commands.refreshLocalDb(ctx)
    list_path = tmp_path / "mods.json"
    text = await commands.exportModsCommand(ctx, list_path)
    assert json.loads(text) == ["A", "B"]

    await commands.toggleAllCommand(ctx, False)
    await commands.toggleModCommand(ctx, "C", True)

    failed = await commands.importModsCommand(ctx, list_path, disableMissing=True)

    assert failed == []
    active = sorted(localMod.uniqueName for localMod in ctx.localDb.peek().active())
    assert active == ["A", "B"]


@pytest.mark.asyncio
async def test_downloads_view_and_clear(ctx):
    bar = ProgressBar("dl-view", 2, "Downloading", "Failed")
    bar.finish(True, "Done")
    downloads = commands.getDownloads(ctx)
    assert [state.id for state in downloads] == ["dl-view"]
    commands.clearDownloads(ctx)
    assert commands.getDownloads(ctx) == []


OWML_MANIFEST = {"uniqueName": "Alek.OWML", "name": "OWML", "author": "Alek", "version": "2.9.0"}


async def _no_launch(config: Config, port: int) -> None:
    pass


@pytest.mark.asyncio
async def test_start_game_shows_each_warning_once(ctx, write_mod, tmp_path):
    write_mod("Scary.Mod", enabled=True, warning={"title": "Heads up", "body": "Breaks old saves"})
    write_mod("Quiet.Mod", enabled=False, warning={"title": "Off", "body": "Not enabled"})
    write_mod("Plain.Mod", enabled=True)
    await commands.refreshLocalDb(ctx)
    shown: list[ModWarningsShown] = []
    ctx.bus.addListener(lambda event: shown.append(event) if isinstance(event, ModWarningsShown) else None)

    first = await commands.startGame(ctx, _no_launch)
    await first.stop()

    assert first.warnings == [PendingWarning("Scary.Mod", "Heads up", "Breaks old saves")]
    assert ctx.config.peek().viewedAlerts == ["Scary.Mod"]
    assert loadConfig(tmp_path / "settings.json").viewedAlerts == ["Scary.Mod"]

    second = await commands.startGame(ctx, _no_launch)
    await second.stop()

    assert second.warnings == []
    assert len(shown) == 1
    assert shown[0].warnings == (PendingWarning("Scary.Mod", "Heads up", "Breaks old saves"),)


@pytest.mark.asyncio
async def test_owml_config_is_created_from_defaults_and_merged_on_save(ctx, owml_dir):
    (owml_dir / "OWML.DefaultConfig.json").write_text(
        json.dumps({"gamePath": "C:/Games/OuterWilds", "debugMode": False, "socketPort": 0}), encoding="utf-8",
    )
    reloads: list[object] = []
    ctx.bus.addListener(lambda event: reloads.append(event) if isinstance(event, OwmlConfigReloaded) else None)

    config = await commands.getOwmlConfig(ctx)
    assert config.gamePath == "C:/Games/OuterWilds"
    assert (owml_dir / "OWML.Config.json").is_file()

    saved = await commands.saveOwmlConfig(ctx, {"debugMode": True})

    assert saved.debugMode is True
    assert json.loads((owml_dir / "OWML.Config.json").read_text(encoding="utf-8")) == {
        "gamePath": "C:/Games/OuterWilds",
        "debugMode": True,
        "forceExe": False,
        "incrementalGC": False,
        "socketPort": 0,
    }
    assert len(reloads) == 1

    with pytest.raises(MalformedDataError):
        await commands.saveOwmlConfig(ctx, {"debugMode": "very"})
    assert (await commands.getOwmlConfig(ctx)).debugMode is True


@pytest.mark.asyncio
async def test_owml_config_without_loader_is_not_found(ctx):
    with pytest.raises(NotFoundError):
        await commands.getOwmlConfig(ctx)


@pytest.mark.asyncio
async def test_set_owml_accepts_only_loader_installs(ctx, owml_dir, tmp_path):
    other = tmp_path / "OtherOWML"
    (other / "Mods").mkdir(parents=True)

    assert await commands.setOwml(ctx, other) is False
    assert ctx.config.peek().owmlPath == str(owml_dir)

    (other / "OWML.Manifest.json").write_text(json.dumps(OWML_MANIFEST), encoding="utf-8")
    assert await commands.setOwml(ctx, other) is True

    assert ctx.config.peek().owmlPath == str(other)
    assert loadConfig(tmp_path / "settings.json").owmlPath == str(other)
    owml = await commands.getOwml(ctx)
    assert owml is not None and owml.manifest.version == "2.9.0"


@pytest.mark.asyncio
async def test_clear_logs_notifies_observers(ctx):
    session = await ctx.logSessions.create(4321, None)
    await session.append(SocketMessage(type=SocketMessageType.Info, message="hello"))
    updates: list[int] = []
    ctx.bus.addListener(lambda event: updates.append(event.port) if isinstance(event, LogUpdated) else None)

    await commands.clearLogs(ctx, 4321)

    assert updates == [4321]
    assert await session.count() == 0
