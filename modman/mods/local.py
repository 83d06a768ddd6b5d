# modman/mods/local.py
from __future__ import annotations
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TypeAlias, runtime_checkable

from pydantic import ValidationError

from modman.core.errors import FilesystemError, MalformedDataError, NotFoundError
from modman.core.jsonutils import readJsonFile
from modman.mods.manifest import ModManifest, ModStubConfig
from modman.mods.search import searchRanked
from modman.mods.updates import checkModNeedsUpdate

if TYPE_CHECKING:
    from modman.mods.remote import RemoteDatabase

logger = logging.getLogger(__name__)

__all__ = [
    "MANIFEST_FILE", "CONFIG_FILE", "DEFAULT_CONFIG_FILE", "OWML_MANIFEST_FILE",
    "ModValidationErrorKind", "ModValidationError", "LocalEntry",
    "LocalMod", "FailedMod", "UnsafeLocalMod", "LocalDatabase",
    "readLocalMod", "readModConfig", "readOwml",
]


MANIFEST_FILE = "manifest.json"
CONFIG_FILE = "config.json"
DEFAULT_CONFIG_FILE = "default-config.json"
OWML_MANIFEST_FILE = "OWML.Manifest.json"



class ModValidationErrorKind(str, Enum):
    MissingDep = "MissingDep"
    DisabledDep = "DisabledDep"
    ConflictingMod = "ConflictingMod"
    InvalidManifest = "InvalidManifest"
    DuplicateMod = "DuplicateMod"
    Outdated = "Outdated"
    DependencyCycle = "DependencyCycle"



@dataclass(frozen=True)
class ModValidationError:
    """A non-fatal problem attached to a local entry. Never raised."""
    kind: ModValidationErrorKind
    detail: str = ""

    def describe(self) -> str:
        match self.kind:
            case ModValidationErrorKind.MissingDep:
                return f"Missing dependency {self.detail}"
            case ModValidationErrorKind.DisabledDep:
                return f"Dependency {self.detail} is disabled"
            case ModValidationErrorKind.ConflictingMod:
                return f"Conflicts with enabled mod {self.detail}"
            case ModValidationErrorKind.Outdated:
                return f"Update available: {self.detail}"
            case ModValidationErrorKind.DuplicateMod:
                return f"Duplicate of mod at {self.detail}"
            case ModValidationErrorKind.DependencyCycle:
                return f"Dependency cycle through {self.detail}"
            case _:
                return f"Invalid manifest: {self.detail}"



@runtime_checkable
class LocalEntry(Protocol):
    """What every local database entry can answer, valid or not."""
    @property
    def uniqueName(self) -> str | None: ...
    @property
    def displayName(self) -> str: ...
    @property
    def errorMessages(self) -> list[str]: ...
    @property
    def modPath(self) -> Path: ...
    @property
    def valid(self) -> bool: ...



@dataclass
class LocalMod:
    manifest: ModManifest
    modPath: Path
    enabled: bool = False
    errors: list[ModValidationError] = field(default_factory=list)
    isLoader: bool = False

    @property
    def uniqueName(self) -> str:
        return self.manifest.uniqueName

    @property
    def displayName(self) -> str:
        return self.manifest.name

    @property
    def errorMessages(self) -> list[str]:
        return [err.describe() for err in self.errors]

    @property
    def valid(self) -> bool:
        return True

    @property
    def configPath(self) -> Path:
        return self.modPath / CONFIG_FILE

    @property
    def defaultConfigPath(self) -> Path:
        return self.modPath / DEFAULT_CONFIG_FILE

    def hasError(self, kind: ModValidationErrorKind) -> bool:
        return any(err.kind == kind for err in self.errors)



@dataclass
class FailedMod:
    modPath: Path
    error: ModValidationError

    @property
    def uniqueName(self) -> str | None:
        return None

    @property
    def displayName(self) -> str:
        return self.modPath.name

    @property
    def errors(self) -> list[ModValidationError]:
        return [self.error]

    @property
    def errorMessages(self) -> list[str]:
        return [self.error.describe()]

    @property
    def valid(self) -> bool:
        return False



UnsafeLocalMod: TypeAlias = LocalMod | FailedMod



def readModConfig(configPath: Path) -> ModStubConfig:
    try:
        raw = readJsonFile(configPath)
    except OSError as err:
        raise FilesystemError("Can't read mod config", path=str(configPath)) from err
    except ValueError as err:
        raise MalformedDataError("Malformed mod config", path=str(configPath)) from err
    try:
        return ModStubConfig.model_validate(raw)
    except ValidationError as err:
        raise MalformedDataError("Invalid mod config", path=str(configPath)) from err



def _readManifest(manifestPath: Path) -> ModManifest:
    if not manifestPath.is_file():
        raise NotFoundError("Missing manifest", path=str(manifestPath))
    try:
        raw = readJsonFile(manifestPath)
    except OSError as err:
        raise FilesystemError("Can't read manifest", path=str(manifestPath)) from err
    except ValueError as err:
        raise MalformedDataError("Malformed manifest", path=str(manifestPath)) from err
    try:
        return ModManifest.model_validate(raw)
    except ValidationError as err:
        raise MalformedDataError("Invalid manifest", path=str(manifestPath)) from err



def readLocalMod(modDir: Path) -> LocalMod:
    """
    Parses one mod directory: manifest.json plus the enabled flag from config.json.
    A missing config.json means disabled; a malformed one is an error.
    """
    modDir = Path(modDir).resolve()
    manifest = _readManifest(modDir / MANIFEST_FILE)
    enabled = False
    configPath = modDir / CONFIG_FILE
    if configPath.is_file():
        enabled = readModConfig(configPath).enabled
    return LocalMod(manifest=manifest, modPath=modDir, enabled=enabled)



def readOwml(owmlPath: Path) -> LocalMod | None:
    """The loader's own manifest lives in its root as OWML.Manifest.json."""
    owmlPath = Path(owmlPath)
    manifestPath = owmlPath / OWML_MANIFEST_FILE
    if not manifestPath.is_file():
        return None
    try:
        manifest = _readManifest(manifestPath)
    except (MalformedDataError, FilesystemError, NotFoundError) as err:
        logger.warning("Can't read OWML manifest at '%s': %s", manifestPath, err)
        return None
    return LocalMod(manifest=manifest, modPath=owmlPath.resolve(), enabled=True, isLoader=True)



class LocalDatabase:
    """
    Installed mods, keyed by unique name (valid mods) or install path (failed ones).

    The loader is part of the mapping for lookups but is skipped by the
    iteration helpers, since it can't be toggled or removed like a mod.
    Instances are treated as snapshots: refresh builds a new one and swaps it in.
    """
    def __init__(self, entries: dict[str, UnsafeLocalMod] | None = None, *, owml: LocalMod | None = None) -> None:
        self._entries: dict[str, UnsafeLocalMod] = dict(entries or {})
        self._byPath: dict[str, UnsafeLocalMod] = {}
        self.owml = owml
        if owml is not None:
            self._entries[owml.uniqueName] = owml
        for entry in self._entries.values():
            self._byPath[str(entry.modPath)] = entry

    # ----- Construction -----

    @classmethod
    def fetch(cls, owmlPath: str | Path) -> LocalDatabase:
        """
        Scans <owmlPath>/Mods. One directory never aborts the scan of the others:
        anything that fails to parse becomes a FailedMod carrying the reason.
        Raises FilesystemError only when the mods root itself can't be read.
        """
        owmlPath = Path(owmlPath)
        modsRoot = owmlPath / "Mods"
        owml = readOwml(owmlPath)

        if not modsRoot.exists():
            logger.info("No mods directory at '%s', local database is empty", modsRoot)
            return cls(owml=owml)

        try:
            modDirs = sorted((child for child in modsRoot.iterdir() if child.is_dir()), key=lambda p: p.name.lower())
        except OSError as err:
            raise FilesystemError("Can't read mods directory", path=str(modsRoot)) from err

        entries: dict[str, UnsafeLocalMod] = {}
        for modDir in modDirs:
            try:
                localMod = readLocalMod(modDir)
            except (MalformedDataError, FilesystemError, NotFoundError) as err:
                logger.warning("Failed to load mod at '%s': %s", modDir, err)
                failed = FailedMod(
                    modPath=modDir.resolve(),
                    error=ModValidationError(ModValidationErrorKind.InvalidManifest, err.message),
                )
                entries[str(failed.modPath)] = failed
                continue

            if localMod.uniqueName in entries or (owml is not None and localMod.uniqueName == owml.uniqueName):
                existing = entries.get(localMod.uniqueName) or owml
                logger.warning(
                    "Duplicate mod '%s' at '%s' (already loaded from '%s')",
                    localMod.uniqueName, localMod.modPath, existing.modPath if existing else "?",
                )
                failed = FailedMod(
                    modPath=localMod.modPath,
                    error=ModValidationError(
                        ModValidationErrorKind.DuplicateMod,
                        str(existing.modPath) if existing else localMod.uniqueName,
                    ),
                )
                entries[str(failed.modPath)] = failed
                continue

            entries[localMod.uniqueName] = localMod

        db = cls(entries, owml=owml)

        from modman.mods.validate import attachValidationErrors
        attachValidationErrors(db)

        logger.info(
            "Local database loaded: %d valid, %d failed (root=%s)",
            sum(1 for _ in db.valid()), sum(1 for _ in db.invalid()), modsRoot,
        )
        return db

    # ----- Lookups -----

    def getMod(self, uniqueName: str) -> LocalMod | None:
        entry = self._entries.get(uniqueName)
        return entry if isinstance(entry, LocalMod) else None

    def getModUnsafe(self, key: str | Path) -> UnsafeLocalMod | None:
        """Any entry by unique name or by install path."""
        if isinstance(key, str):
            entry = self._entries.get(key)
            if entry is not None:
                return entry
        return self._byPath.get(str(key)) or self._byPath.get(str(Path(key).resolve()))

    def getOwml(self) -> LocalMod | None:
        return self.owml

    # ----- Iteration -----

    def all(self) -> Iterator[UnsafeLocalMod]:
        for entry in self._entries.values():
            if isinstance(entry, LocalMod) and entry.isLoader:
                continue
            yield entry

    def valid(self) -> Iterator[LocalMod]:
        for entry in self.all():
            if isinstance(entry, LocalMod):
                yield entry

    def invalid(self) -> Iterator[FailedMod]:
        for entry in self.all():
            if isinstance(entry, FailedMod):
                yield entry

    def active(self) -> Iterator[LocalMod]:
        for entry in self.valid():
            if entry.enabled:
                yield entry

    def dependents(self, uniqueName: str, *, enabledOnly: bool = True) -> list[LocalMod]:
        """Mods that list uniqueName as a dependency."""
        return [
            localMod for localMod in self.valid()
            if uniqueName in localMod.manifest.dependencies and (localMod.enabled or not enabledOnly)
        ]

    def __len__(self) -> int:
        return sum(1 for _ in self.all())

    def __contains__(self, uniqueName: object) -> bool:
        return isinstance(uniqueName, str) and self.getMod(uniqueName) is not None

    # ----- Queries -----

    def search(self, query: str) -> list[UnsafeLocalMod]:
        return searchRanked(self.all(), query, keys=lambda entry: (entry.uniqueName, entry.displayName))

    def validateUpdates(self, remote: RemoteDatabase) -> list[str]:
        """
        Refreshes the cached Outdated state against `remote`.

        Drops Outdated errors from a previous run first, so repeated calls only
        ever reflect the latest snapshot. Returns the names that need an update.
        """
        outdated: list[str] = []
        candidates = list(self.valid())
        if self.owml is not None:
            candidates.append(self.owml)
        for localMod in candidates:
            localMod.errors = [err for err in localMod.errors if err.kind != ModValidationErrorKind.Outdated]
            needsUpdate, remoteMod = checkModNeedsUpdate(localMod, remote)
            if needsUpdate and remoteMod is not None:
                localMod.errors.append(ModValidationError(ModValidationErrorKind.Outdated, remoteMod.version))
                outdated.append(localMod.uniqueName)
        return outdated
