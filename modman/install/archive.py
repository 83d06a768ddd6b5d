# modman/install/archive.py
from __future__ import annotations
import logging
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath

import json5
from pydantic import ValidationError

from modman.core.errors import FilesystemError, MalformedDataError
from modman.core.ids import uuid_10
from modman.core.jsonutils import fixJson
from modman.mods.local import CONFIG_FILE, MANIFEST_FILE, OWML_MANIFEST_FILE, LocalMod
from modman.mods.manifest import ModManifest
from modman.progress import ProgressAction, ProgressBar, ProgressType

logger = logging.getLogger(__name__)

__all__ = [
    "validateArchive", "findManifest", "readArchiveManifest", "peekUniqueName",
    "extractMod", "extractOwml", "OWML_PRESERVE",
]

# Kept from the previous loader install when OWML itself is replaced
OWML_PRESERVE = ("Mods", "OWML.Config.json")



def validateArchive(archivePath: str | Path) -> None:
    """
    Raises MalformedDataError unless the file is a readable zip with intact CRCs.
    Encrypted members and unsupported compression methods count as unreadable.
    """
    archivePath = Path(archivePath)
    try:
        with zipfile.ZipFile(archivePath) as zf:
            bad = zf.testzip()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, zlib.error, RuntimeError, NotImplementedError) as err:
        raise MalformedDataError("Not a valid zip archive", path=str(archivePath)) from err
    except OSError as err:
        raise FilesystemError("Can't read archive", path=str(archivePath)) from err
    if bad is not None:
        raise MalformedDataError(f"Corrupt archive member '{bad}'", path=str(archivePath))



def findManifest(zf: zipfile.ZipFile, manifestName: str = MANIFEST_FILE) -> str | None:
    """Name of the shallowest `manifestName` entry, or None. Ties go to archive order."""
    best: str | None = None
    bestDepth = 0
    for info in zf.infolist():
        if info.is_dir():
            continue
        parts = PurePosixPath(info.filename).parts
        if not parts or parts[-1] != manifestName:
            continue
        if best is None or len(parts) < bestDepth:
            best = info.filename
            bestDepth = len(parts)
    return best



def readArchiveManifest(zf: zipfile.ZipFile, name: str) -> ModManifest:
    try:
        text = zf.read(name).decode("utf-8-sig")
        return ModManifest.model_validate(json5.loads(fixJson(text)))
    except (ValueError, ValidationError, UnicodeDecodeError) as err:
        raise MalformedDataError(f"Invalid manifest in archive ({name})") from err



def _safeTarget(root: Path, relative: str) -> Path:
    """Resolves `relative` under `root`, rejecting absolute paths and '..' escapes."""
    pure = PurePosixPath(relative.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        raise MalformedDataError(f"Archive entry escapes the install directory: {relative}")
    target = (root / Path(*pure.parts)).resolve()
    if target != root and root not in target.parents:
        raise MalformedDataError(f"Archive entry escapes the install directory: {relative}")
    return target



def _extractInto(zf: zipfile.ZipFile, prefix: str, staging: Path, bar: ProgressBar | None) -> int:
    """Extracts every member below `prefix` into `staging`, stripping the prefix."""
    staging = staging.resolve()
    members = [info for info in zf.infolist() if info.filename.startswith(prefix)]
    count = 0
    for info in members:
        relative = info.filename[len(prefix):]
        if not relative.strip("/"):
            continue
        target = _safeTarget(staging, relative)
        if info.is_dir():
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, target.open("wb") as dst:
                shutil.copyfileobj(src, dst)
            count += 1
        if bar is not None:
            bar.inc(1)
    return count



def _carryOver(source: Path, staging: Path, relPaths: list[str], *, move: bool) -> list[tuple[Path, Path]]:
    """Copies (or moves) preserved paths from the old install into staging. Returns moves done."""
    moved: list[tuple[Path, Path]] = []
    for rel in relPaths:
        try:
            src = _safeTarget(source.resolve(), rel)
            dst = _safeTarget(staging.resolve(), rel)
        except MalformedDataError:
            logger.warning("Ignoring preserved path outside the mod directory: '%s'", rel)
            continue
        if not src.exists():
            continue
        if dst.is_dir():
            shutil.rmtree(dst)
        elif dst.exists():
            dst.unlink()
        dst.parent.mkdir(parents=True, exist_ok=True)
        if move:
            shutil.move(str(src), str(dst))
            moved.append((src, dst))
        elif src.is_dir():
            shutil.copytree(src, dst)
        else:
            shutil.copy2(src, dst)
    return moved



def _swapIntoPlace(staging: Path, target: Path, preserve: list[str], *, movePreserved: bool = False) -> None:
    """
    Replaces `target` with `staging`. The previous install is parked next to it
    and restored when anything fails, so a half-written directory never stays
    at `target`.
    """
    backup: Path | None = None
    moved: list[tuple[Path, Path]] = []
    try:
        if target.exists():
            moved = _carryOver(target, staging, preserve, move=movePreserved)
            backup = target.with_name(f".{target.name}.old-{uuid_10()}")
            target.rename(backup)
        staging.rename(target)
    except BaseException:
        if backup is not None and not target.exists():
            backup.rename(target)
        for src, dst in reversed(moved):
            if dst.exists() and not src.exists():
                shutil.move(str(dst), str(src))
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)



def _extract(
    archivePath: Path,
    target: Path,
    manifestName: str,
    preserve: list[str],
    *,
    barId: str | None,
    label: str,
    movePreserved: bool,
    expectedName: str | None,
) -> ModManifest:
    staging = target.parent / f".{target.name}.staging-{uuid_10()}"
    bar: ProgressBar | None = None
    try:
        with zipfile.ZipFile(archivePath) as zf:
            manifestPath = findManifest(zf, manifestName)
            if manifestPath is None:
                raise MalformedDataError(f"No {manifestName} found in archive", path=str(archivePath))
            manifest = readArchiveManifest(zf, manifestPath)
            if expectedName is not None and manifest.uniqueName != expectedName:
                raise MalformedDataError(
                    f"Archive contains '{manifest.uniqueName}' instead of '{expectedName}'",
                    path=str(archivePath),
                )
            prefix = manifestPath[: -len(manifestName)]
            total = sum(1 for info in zf.infolist() if info.filename.startswith(prefix))
            bar = ProgressBar(
                barId, total, f"Extracting {label}", f"Failed to extract {label}",
                ProgressType.Definite, ProgressAction.Extract,
            )
            staging.mkdir(parents=True)
            _extractInto(zf, prefix, staging, bar)
        _swapIntoPlace(staging, target, preserve, movePreserved=movePreserved)
        bar.finish(True, f"Installed {manifest.name}")
    except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as err:
        raise MalformedDataError("Corrupt zip archive", path=str(archivePath)) from err
    except OSError as err:
        raise FilesystemError("Couldn't extract archive", path=str(target)) from err
    finally:
        if bar is not None:
            bar.close()
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
    return manifest



def peekUniqueName(archivePath: Path) -> str:
    try:
        with zipfile.ZipFile(archivePath) as zf:
            manifestPath = findManifest(zf)
            if manifestPath is None:
                raise MalformedDataError(f"No {MANIFEST_FILE} found in archive", path=str(archivePath))
            uniqueName = readArchiveManifest(zf, manifestPath).uniqueName
    except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as err:
        raise MalformedDataError("Not a valid zip archive", path=str(archivePath)) from err
    except OSError as err:
        raise FilesystemError("Can't read archive", path=str(archivePath)) from err
    # The unique name becomes a directory name
    if "/" in uniqueName or "\\" in uniqueName or uniqueName in (".", ".."):
        raise MalformedDataError(f"Unique name '{uniqueName}' can't be used as a directory name")
    return uniqueName



def extractMod(
    archivePath: str | Path,
    modsDir: str | Path,
    *,
    barId: str | None = None,
    existing: LocalMod | None = None,
    expectedName: str | None = None,
    label: str | None = None,
) -> Path:
    """
    Installs a mod archive under `modsDir` and returns the final directory.

    The archive is unpacked into a staging directory first; config.json and the
    manifest's pathsToPreserve are carried over from `existing`, then staging is
    swapped in. New installs land in <modsDir>/<uniqueName>. Passing the id of
    the download bar makes the Extract phase continue on the same row; `label`
    names the mod in its messages (defaults to the install folder name).
    """
    archivePath = Path(archivePath)
    modsDir = Path(modsDir)
    preserve = [CONFIG_FILE]
    if existing is not None:
        preserve += [p for p in existing.manifest.pathsToPreserve if p not in preserve]
        target = existing.modPath
    else:
        target = modsDir / peekUniqueName(archivePath)
    try:
        modsDir.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise FilesystemError("Can't create mods directory", path=str(modsDir)) from err
    _extract(
        archivePath, target, MANIFEST_FILE, preserve,
        barId=barId, label=label or target.name, movePreserved=False, expectedName=expectedName,
    )
    logger.info("Extracted '%s' into '%s'", archivePath.name, target)
    return target



def extractOwml(archivePath: str | Path, owmlPath: str | Path, *, barId: str | None = None) -> ModManifest:
    """Installs the loader into `owmlPath`, keeping the user's Mods folder and loader config."""
    archivePath = Path(archivePath)
    owmlPath = Path(owmlPath)
    try:
        owmlPath.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise FilesystemError("Can't create loader directory", path=str(owmlPath.parent)) from err
    return _extract(
        archivePath, owmlPath, OWML_MANIFEST_FILE, list(OWML_PRESERVE),
        barId=barId, label="OWML", movePreserved=True, expectedName=None,
    )
