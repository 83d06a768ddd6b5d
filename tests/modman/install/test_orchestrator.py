# tests/modman/install/test_orchestrator.py
from __future__ import annotations
import asyncio
import json
import uuid

import httpx
import pytest
import pytest_asyncio

import modman.install.download as download_module
from modman.app.context import AppContext
from modman.app.paths import tempDir
from modman.app.settings import Config
from modman.core.errors import NotFoundError
from modman.events import DatabaseRefreshed, ProgressEvent
from modman.mods import RemoteDatabase, RemoteMod
from modman.progress import ProgressAction, ProgressStartPayload

BASE_URL = "https://mods.example.test"


def _manifest(unique_name: str, version: str = "1.0.0", **extra) -> dict:
    payload = {"uniqueName": unique_name, "name": unique_name, "author": "Tester", "version": version}
    payload.update(extra)
    return payload


def _remote(unique_name: str, version: str = "1.0.0", **extra) -> RemoteMod:
    return RemoteMod(
        uniqueName=unique_name,
        name=extra.pop("name", unique_name),
        version=version,
        downloadUrl=f"{BASE_URL}/{unique_name}.zip",
        **extra,
    )


@pytest_asyncio.fixture()
async def ctx(owml_dir):
    context = AppContext.create(Config(owmlPath=str(owml_dir)))
    yield context
    await context.aclose()


@pytest.fixture()
def served(mock_http):
    """Archives served by URL path; records every request."""
    files: dict[str, bytes] = {}
    requests: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request.url.path)
        await asyncio.sleep(0)
        body = files.get(request.url.path)
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, content=body)

    mock_http(handler)
    return files, requests


def _publish(ctx: AppContext, *remoteMods: RemoteMod) -> None:
    ctx.remoteDb.set(RemoteDatabase({remoteMod.uniqueName: remoteMod for remoteMod in remoteMods}))


@pytest.mark.asyncio
async def test_install_downloads_extracts_and_refreshes(ctx, served, make_zip, owml_dir):
    files, _requests = served
    files["/A.One.zip"] = make_zip({
        "A.One/manifest.json": _manifest("A.One"),
        "A.One/default-config.json": {"enabled": False, "settings": {"speed": 1}},
    })
    _publish(ctx, _remote("A.One"))

    localMod = await ctx.orchestrator.installMod("A.One")

    assert localMod is not None
    assert localMod.modPath == (owml_dir / "Mods" / "A.One").resolve()
    config = json.loads((localMod.modPath / "config.json").read_text(encoding="utf-8"))
    assert config == {"enabled": False, "settings": {"speed": 1}}
    assert ctx.localDb.peek().getMod("A.One") is not None
    assert not ctx.busy.isBusy("A.One")
    assert list(tempDir().glob("*.zip")) == []

    bar = ctx.tracker.get("A.One")
    assert bar is not None
    assert bar.complete and bar.success is True
    assert bar.progressAction == ProgressAction.Extract


@pytest.mark.asyncio
async def test_concurrent_installs_of_same_mod_download_once(ctx, served, make_zip):
    files, requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One")})
    _publish(ctx, _remote("A.One"))

    first, second = await asyncio.gather(
        ctx.orchestrator.installMod("A.One"),
        ctx.orchestrator.installMod("A.One"),
    )

    assert sum(result is not None for result in (first, second)) == 1
    assert requests == ["/A.One.zip"]
    assert ctx.busy.snapshot() == ()


@pytest.mark.asyncio
async def test_install_many_isolates_failures(ctx, served, make_zip, owml_dir):
    files, _requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One")})
    files["/B.Two.zip"] = b"PK\x03\x04 truncated garbage"
    files["/C.Three.zip"] = make_zip({"manifest.json": _manifest("C.Three")})
    _publish(ctx, _remote("A.One"), _remote("B.Two"), _remote("C.Three"))

    outcomes = await ctx.orchestrator.installMany(["A.One", "B.Two", "C.Three"])

    assert [(outcome.uniqueName, outcome.status) for outcome in outcomes] == [
        ("A.One", "installed"),
        ("B.Two", "failed"),
        ("C.Three", "installed"),
    ]
    assert outcomes[1].error
    assert not (owml_dir / "Mods" / "B.Two").exists()
    assert ctx.busy.snapshot() == ()
    localDb = ctx.localDb.peek()
    assert localDb.getMod("A.One") is not None and localDb.getMod("C.Three") is not None


@pytest.mark.asyncio
async def test_install_many_reports_busy_names(ctx, served, make_zip):
    files, requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One")})
    _publish(ctx, _remote("A.One"))
    assert ctx.busy.tryAcquire("A.One")

    outcomes = await ctx.orchestrator.installMany(["A.One"])

    assert [(outcome.uniqueName, outcome.status) for outcome in outcomes] == [("A.One", "busy")]
    assert requests == []
    assert ctx.busy.isBusy("A.One")
    ctx.busy.release("A.One")


@pytest.mark.asyncio
async def test_recursive_install_pulls_missing_dependencies(ctx, served, make_zip):
    files, requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One", dependencies=["B.Two", "Alek.OWML"])})
    files["/B.Two.zip"] = make_zip({"manifest.json": _manifest("B.Two")})
    _publish(ctx, _remote("A.One", dependencies=["B.Two"]), _remote("B.Two"))

    await ctx.orchestrator.installMod("A.One")

    assert requests == ["/A.One.zip", "/B.Two.zip"]
    assert ctx.localDb.peek().getMod("B.Two") is not None


@pytest.mark.asyncio
async def test_update_keeps_user_config(ctx, served, make_zip, write_mod):
    files, _requests = served
    write_mod("A.One", version="1.0.0", config={"enabled": True, "settings": {"speed": 9}})
    files["/A.One.zip"] = make_zip({
        "manifest.json": _manifest("A.One", version="2.0.0"),
        "default-config.json": {"enabled": False, "settings": {"speed": 1}},
    })
    _publish(ctx, _remote("A.One", version="2.0.0"))
    await ctx.orchestrator.refreshLocalDb()
    assert await ctx.orchestrator.getUpdatableMods() == ["A.One"]
    assert await ctx.orchestrator.needsUpdate("A.One")

    localMod = await ctx.orchestrator.updateMod("A.One")

    assert localMod is not None
    assert localMod.manifest.version == "2.0.0"
    assert localMod.enabled is True
    config = json.loads((localMod.modPath / "config.json").read_text(encoding="utf-8"))
    assert config["settings"] == {"speed": 9}
    assert await ctx.orchestrator.getUpdatableMods() == []


@pytest.mark.asyncio
async def test_update_of_missing_mod_is_not_found(ctx):
    with pytest.raises(NotFoundError):
        await ctx.orchestrator.updateMod("Not.Installed")


@pytest.mark.asyncio
async def test_install_of_unknown_remote_mod_releases_slot(ctx, served):
    with pytest.raises(NotFoundError):
        await ctx.orchestrator.installMod("Not.Listed")
    assert not ctx.busy.isBusy("Not.Listed")


@pytest.mark.asyncio
async def test_install_zip_from_disk(ctx, make_zip, tmp_path):
    archive = tmp_path / "local.zip"
    archive.write_bytes(make_zip({"Pkg/manifest.json": _manifest("Side.Loaded")}))

    localMod = await ctx.orchestrator.installZip(archive)

    assert localMod is not None and localMod.uniqueName == "Side.Loaded"
    assert archive.exists()
    assert ctx.busy.snapshot() == ()


@pytest.mark.asyncio
async def test_uninstall_reports_enabled_dependents(ctx, write_mod):
    lib_dir = write_mod("Lib.Core", enabled=True)
    write_mod("Uses.Lib", dependencies=["Lib.Core"], enabled=True)
    await ctx.orchestrator.refreshLocalDb()

    warnings = await ctx.orchestrator.uninstallMod("Lib.Core")

    assert warnings == ["Uses.Lib"]
    assert not lib_dir.exists()
    assert ctx.localDb.peek().getMod("Lib.Core") is None


@pytest.mark.asyncio
async def test_loader_cannot_be_uninstalled(ctx):
    with pytest.raises(NotFoundError):
        await ctx.orchestrator.uninstallMod("Alek.OWML")


@pytest.mark.asyncio
async def test_broken_mod_can_be_removed_by_path(ctx, owml_dir):
    broken = owml_dir / "Mods" / "Broken"
    broken.mkdir()
    (broken / "manifest.json").write_text("{{{", encoding="utf-8")
    await ctx.orchestrator.refreshLocalDb()

    await ctx.orchestrator.uninstallBrokenMod(str(broken.resolve()))

    assert not broken.exists()
    assert list(ctx.localDb.peek().invalid()) == []


@pytest.mark.asyncio
async def test_refresh_publishes_event(ctx, write_mod):
    write_mod("A.One", enabled=True)
    seen: list[str] = []
    ctx.bus.addListener(lambda event: seen.append(event.which) if isinstance(event, DatabaseRefreshed) else None)

    localDb = await ctx.orchestrator.refreshLocalDb()

    assert seen == ["local"]
    assert localDb is ctx.localDb.peek()
    assert localDb.getMod("A.One") is not None


@pytest.mark.asyncio
async def test_cancelled_install_releases_slot(ctx, mock_http, owml_dir):
    started = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.Event().wait()
        return httpx.Response(200, content=b"")

    mock_http(handler)
    _publish(ctx, _remote("A.One"))

    task = asyncio.create_task(ctx.orchestrator.installMod("A.One"))
    await asyncio.wait_for(started.wait(), timeout=5)
    assert ctx.busy.isBusy("A.One")
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not ctx.busy.isBusy("A.One")
    assert not (owml_dir / "Mods" / "A.One").exists()
    assert list(tempDir().glob("*.zip")) == []


@pytest.mark.asyncio
async def test_install_many_reports_encrypted_archive_as_failed(ctx, served, make_zip, flag_encrypted, owml_dir):
    files, _requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One")})
    files["/B.Two.zip"] = flag_encrypted(make_zip({"manifest.json": _manifest("B.Two")}))
    _publish(ctx, _remote("A.One"), _remote("B.Two"))

    outcomes = await ctx.orchestrator.installMany(["A.One", "B.Two"])

    assert [(outcome.uniqueName, outcome.status) for outcome in outcomes] == [
        ("A.One", "installed"),
        ("B.Two", "failed"),
    ]
    assert not (owml_dir / "Mods" / "B.Two").exists()
    assert ctx.busy.snapshot() == ()
    assert list(tempDir().glob("*.zip")) == []


@pytest.mark.asyncio
async def test_extract_progress_names_the_mod(ctx, served, make_zip):
    files, _requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One")})
    _publish(ctx, _remote("A.One", name="Alpha Mod"))
    starts: list[ProgressStartPayload] = []

    def onEvent(event) -> None:
        if isinstance(event, ProgressEvent) and isinstance(event.payload, ProgressStartPayload):
            starts.append(event.payload)

    ctx.bus.addListener(onEvent)
    await ctx.orchestrator.installMod("A.One")

    assert [(start.progressAction, start.msg) for start in starts] == [
        (ProgressAction.Download, "Downloading Alpha Mod"),
        (ProgressAction.Extract, "Extracting Alpha Mod"),
    ]


@pytest.mark.asyncio
async def test_remote_refresh_swaps_local_snapshot(ctx, mock_http, write_mod):
    write_mod("A.One", version="1.0.0", enabled=True)
    await ctx.orchestrator.refreshLocalDb()
    before = ctx.localDb.peek()
    mock_http(lambda request: httpx.Response(200, json=[
        {"uniqueName": "A.One", "name": "A.One", "version": "2.0.0", "downloadUrl": f"{BASE_URL}/A.One.zip"},
    ]))

    await ctx.orchestrator.refreshRemoteDb()

    after = ctx.localDb.peek()
    assert after is not before
    assert before.getMod("A.One").errors == []
    assert [err.kind.value for err in after.getMod("A.One").errors] == ["Outdated"]


@pytest.mark.asyncio
async def test_downloads_land_in_time_ordered_temp_files(ctx, served, make_zip, monkeypatch):
    files, _requests = served
    files["/A.One.zip"] = make_zip({"manifest.json": _manifest("A.One")})
    _publish(ctx, _remote("A.One"))
    seen: list[str] = []
    original = download_module.download

    async def recording(url, dest, **kwargs):
        seen.append(dest.name)
        return await original(url, dest, **kwargs)

    monkeypatch.setattr(download_module, "download", recording)
    await ctx.orchestrator.installMod("A.One")

    assert len(seen) == 1
    assert seen[0].startswith("dl-") and seen[0].endswith(".zip")
    assert uuid.UUID(seen[0][3:-4]).version == 7
