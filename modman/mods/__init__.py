from __future__ import annotations

from .manifest import OWML_UNIQUE_NAME, ModManifest, ModStubConfig, ModWarning
from .local import (
    FailedMod,
    LocalDatabase,
    LocalEntry,
    LocalMod,
    ModValidationError,
    ModValidationErrorKind,
    UnsafeLocalMod,
    readLocalMod,
)
from .owml_config import OwmlConfig, readOwmlConfig, writeOwmlConfig
from .remote import Alert, RemoteDatabase, RemoteMod, fetchAlert
from .toggle import ToggleResult, copyDefaultConfig, getModEnabled, toggleAll, toggleMod
from .updates import checkModNeedsUpdate
from .validate import FixOutcome, ModProblem, fixDeps, hasDisabledDeps, validateDatabase

__all__ = [
    "OWML_UNIQUE_NAME",
    "ModManifest",
    "ModStubConfig",
    "ModWarning",
    "FailedMod",
    "LocalDatabase",
    "LocalEntry",
    "LocalMod",
    "ModValidationError",
    "ModValidationErrorKind",
    "UnsafeLocalMod",
    "readLocalMod",
    "OwmlConfig",
    "readOwmlConfig",
    "writeOwmlConfig",
    "Alert",
    "RemoteDatabase",
    "RemoteMod",
    "fetchAlert",
    "ToggleResult",
    "copyDefaultConfig",
    "getModEnabled",
    "toggleAll",
    "toggleMod",
    "checkModNeedsUpdate",
    "FixOutcome",
    "ModProblem",
    "fixDeps",
    "hasDisabledDeps",
    "validateDatabase",
]
