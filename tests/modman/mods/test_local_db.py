# tests/modman/mods/test_local_db.py
from __future__ import annotations
from pathlib import Path

from modman.mods import (
    FailedMod,
    LocalDatabase,
    LocalMod,
    ModValidationErrorKind,
    RemoteDatabase,
    RemoteMod,
)


def _remote(unique_name: str, version: str, **extra) -> RemoteMod:
    return RemoteMod(
        uniqueName=unique_name,
        name=unique_name,
        version=version,
        downloadUrl=f"https://example.test/{unique_name}.zip",
        **extra,
    )


def test_scan_collects_valid_and_failed_mods(owml_dir, write_mod):
    write_mod("Alpha.One", enabled=True)
    write_mod("Beta.Two")
    broken = owml_dir / "Mods" / "Broken"
    broken.mkdir()
    (broken / "manifest.json").write_text("{ this is not json", encoding="utf-8")
    (owml_dir / "Mods" / "Empty").mkdir()

    db = LocalDatabase.fetch(owml_dir)

    alpha = db.getMod("Alpha.One")
    assert isinstance(alpha, LocalMod)
    assert alpha.enabled is True
    beta = db.getMod("Beta.Two")
    assert beta is not None and beta.enabled is False

    failed = sorted(db.invalid(), key=lambda entry: entry.displayName)
    assert [entry.displayName for entry in failed] == ["Broken", "Empty"]
    assert all(entry.errors[0].kind == ModValidationErrorKind.InvalidManifest for entry in failed)
    assert len(db) == 4


def test_one_bad_config_never_aborts_the_scan(owml_dir, write_mod):
    write_mod("Alpha.One", enabled=True)
    bad = write_mod("Beta.Two")
    (bad / "config.json").write_text("[[[", encoding="utf-8")

    db = LocalDatabase.fetch(owml_dir)
    assert db.getMod("Alpha.One") is not None
    assert db.getMod("Beta.Two") is None
    entry = db.getModUnsafe(bad)
    assert isinstance(entry, FailedMod)


def test_duplicate_unique_names_become_failed_entries(owml_dir, write_mod):
    first = write_mod("Same.Mod", folder="a-first")
    second = write_mod("Same.Mod", folder="b-second")

    db = LocalDatabase.fetch(owml_dir)
    localMod = db.getMod("Same.Mod")
    assert localMod is not None and localMod.modPath == first.resolve()

    duplicate = db.getModUnsafe(second)
    assert isinstance(duplicate, FailedMod)
    assert duplicate.error.kind == ModValidationErrorKind.DuplicateMod
    assert duplicate.error.detail == str(first.resolve())


def test_missing_mods_dir_gives_empty_database(tmp_path: Path):
    db = LocalDatabase.fetch(tmp_path / "nowhere")
    assert len(db) == 0
    assert db.getOwml() is None


def test_loader_is_looked_up_but_not_listed(owml_dir, write_mod, write_owml):
    write_owml("2.9.0")
    write_mod("Alpha.One", enabled=True)

    db = LocalDatabase.fetch(owml_dir)
    owml = db.getOwml()
    assert owml is not None and owml.isLoader
    assert db.getMod("Alek.OWML") is owml
    assert [entry.uniqueName for entry in db.all()] == ["Alpha.One"]


def test_dependents_only_counts_enabled_mods(owml_dir, write_mod):
    write_mod("Lib.Core")
    write_mod("Uses.One", dependencies=["Lib.Core"], enabled=True)
    write_mod("Uses.Two", dependencies=["Lib.Core"], enabled=False)

    db = LocalDatabase.fetch(owml_dir)
    assert [mod.uniqueName for mod in db.dependents("Lib.Core")] == ["Uses.One"]
    assert {mod.uniqueName for mod in db.dependents("Lib.Core", enabledOnly=False)} == {"Uses.One", "Uses.Two"}


def test_search_ranks_exact_then_prefix_then_substring(owml_dir, write_mod):
    write_mod("Xen.Camera", name="Free Cam")
    write_mod("Cam", name="Camera")
    write_mod("Other.Thing", name="Cambridge")

    db = LocalDatabase.fetch(owml_dir)
    assert [entry.uniqueName for entry in db.search("cam")] == ["Cam", "Other.Thing", "Xen.Camera"]
    assert db.search("zzz") == []
    assert len(db.search("  ")) == 3


def test_validate_updates_marks_outdated_and_clears_on_rerun(owml_dir, write_mod, write_owml):
    write_owml("2.9.0")
    write_mod("Alpha.One", version="1.0.0")
    write_mod("Beta.Two", version="2.0.0")
    db = LocalDatabase.fetch(owml_dir)

    remote = RemoteDatabase({
        "Alpha.One": _remote("Alpha.One", "1.1.0"),
        "Beta.Two": _remote("Beta.Two", "2.0.0"),
        "Alek.OWML": _remote("Alek.OWML", "2.10.0"),
    })
    assert sorted(db.validateUpdates(remote)) == ["Alek.OWML", "Alpha.One"]
    alpha = db.getMod("Alpha.One")
    assert alpha is not None and alpha.hasError(ModValidationErrorKind.Outdated)

    newer = RemoteDatabase({"Alpha.One": _remote("Alpha.One", "1.0.0")})
    assert db.validateUpdates(newer) == []
    assert not alpha.hasError(ModValidationErrorKind.Outdated)


def test_prerelease_install_is_not_outdated(owml_dir, write_mod):
    write_mod("Alpha.One", version="2.0.0-beta")
    db = LocalDatabase.fetch(owml_dir)
    remote = RemoteDatabase({
        "Alpha.One": _remote(
            "Alpha.One", "1.5.0",
            prerelease={"version": "2.0.0-beta", "downloadUrl": "https://example.test/pre.zip"},
        ),
    })
    assert db.validateUpdates(remote) == []
