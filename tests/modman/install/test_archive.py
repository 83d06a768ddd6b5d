# tests/modman/install/test_archive.py
from __future__ import annotations
import json
from pathlib import Path

import pytest

from modman.core.errors import MalformedDataError
from modman.install import extractMod, extractOwml, validateArchive
from modman.mods import LocalDatabase


def _manifest(unique_name: str, **extra) -> dict:
    payload = {"uniqueName": unique_name, "name": unique_name, "author": "Tester", "version": "1.0.0"}
    payload.update(extra)
    return payload


def _write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def test_nested_archive_is_flattened_into_unique_name(tmp_path, owml_dir, make_zip):
    archive = _write(tmp_path / "mod.zip", make_zip({
        "Release/manifest.json": _manifest("Alpha.One"),
        "Release/Alpha.dll": b"binary",
        "Release/assets/icon.png": b"png",
        "README.md": "outside the mod folder",
    }))

    target = extractMod(archive, owml_dir / "Mods")
    assert target == owml_dir / "Mods" / "Alpha.One"
    assert (target / "manifest.json").is_file()
    assert (target / "Alpha.dll").read_bytes() == b"binary"
    assert (target / "assets" / "icon.png").is_file()
    assert not (target / "README.md").exists()


def test_update_keeps_config_and_preserved_paths(tmp_path, owml_dir, write_mod, make_zip):
    mod_dir = write_mod("Alpha.One", enabled=True, pathsToPreserve=["saves"])
    (mod_dir / "saves").mkdir()
    (mod_dir / "saves" / "slot1.dat").write_text("progress", encoding="utf-8")
    (mod_dir / "stale.dll").write_text("old", encoding="utf-8")
    existing = LocalDatabase.fetch(owml_dir).getMod("Alpha.One")
    assert existing is not None

    archive = _write(tmp_path / "mod.zip", make_zip({
        "manifest.json": _manifest("Alpha.One", version="2.0.0"),
        "config.json": {"enabled": False},
        "new.dll": b"new",
    }))
    target = extractMod(archive, owml_dir / "Mods", existing=existing)

    assert target == existing.modPath
    assert json.loads((target / "config.json").read_text(encoding="utf-8"))["enabled"] is True
    assert (target / "saves" / "slot1.dat").read_text(encoding="utf-8") == "progress"
    assert (target / "new.dll").is_file()
    assert not (target / "stale.dll").exists()
    assert json.loads((target / "manifest.json").read_text(encoding="utf-8"))["version"] == "2.0.0"


def test_zip_slip_is_rejected_and_old_install_survives(tmp_path, owml_dir, write_mod, make_zip):
    mod_dir = write_mod("Alpha.One", enabled=True)
    existing = LocalDatabase.fetch(owml_dir).getMod("Alpha.One")
    archive = _write(tmp_path / "evil.zip", make_zip({
        "manifest.json": _manifest("Alpha.One"),
        "../../escaped.txt": "nope",
    }))

    with pytest.raises(MalformedDataError):
        extractMod(archive, owml_dir / "Mods", existing=existing)

    assert (mod_dir / "config.json").is_file()
    assert not (tmp_path / "escaped.txt").exists()
    assert sorted(child.name for child in (owml_dir / "Mods").iterdir()) == ["Alpha.One"]


def test_archive_without_manifest_is_rejected(tmp_path, owml_dir, make_zip):
    archive = _write(tmp_path / "empty.zip", make_zip({"readme.txt": "hi"}))
    with pytest.raises(MalformedDataError):
        extractMod(archive, owml_dir / "Mods")
    assert list((owml_dir / "Mods").iterdir()) == []


def test_wrong_mod_in_archive_is_rejected(tmp_path, owml_dir, make_zip):
    archive = _write(tmp_path / "other.zip", make_zip({"manifest.json": _manifest("Someone.Else")}))
    with pytest.raises(MalformedDataError):
        extractMod(archive, owml_dir / "Mods", expectedName="Alpha.One")


def test_corrupt_archive_is_malformed(tmp_path, owml_dir):
    archive = _write(tmp_path / "corrupt.zip", b"PK\x03\x04 definitely not a zip")
    with pytest.raises(MalformedDataError):
        validateArchive(archive)
    with pytest.raises(MalformedDataError):
        extractMod(archive, owml_dir / "Mods")


def test_owml_install_keeps_mods_and_loader_config(tmp_path, owml_dir, write_mod, make_zip):
    write_mod("Alpha.One", enabled=True)
    (owml_dir / "OWML.Config.json").write_text('{"gamePath": "C:/Game"}', encoding="utf-8")
    (owml_dir / "OWML.Old.dll").write_text("old", encoding="utf-8")

    archive = _write(tmp_path / "owml.zip", make_zip({
        "OWML.Manifest.json": _manifest("Alek.OWML", version="2.10.0"),
        "OWML.Launcher.exe": b"exe",
        "OWML.Config.json": '{"gamePath": ""}',
    }))
    manifest = extractOwml(archive, owml_dir)

    assert manifest.version == "2.10.0"
    assert (owml_dir / "OWML.Launcher.exe").is_file()
    assert not (owml_dir / "OWML.Old.dll").exists()
    assert json.loads((owml_dir / "OWML.Config.json").read_text(encoding="utf-8")) == {"gamePath": "C:/Game"}
    assert (owml_dir / "Mods" / "Alpha.One" / "manifest.json").is_file()


def test_encrypted_archive_is_malformed(tmp_path, owml_dir, make_zip, flag_encrypted):
    archive = _write(tmp_path / "locked.zip", flag_encrypted(make_zip({
        "manifest.json": _manifest("Locked.Mod"),
        "Locked.dll": b"binary",
    })))

    with pytest.raises(MalformedDataError):
        validateArchive(archive)
    with pytest.raises(MalformedDataError):
        extractMod(archive, owml_dir / "Mods", expectedName="Locked.Mod")
    assert not (owml_dir / "Mods" / "Locked.Mod").exists()
