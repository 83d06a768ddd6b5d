# modman/app/settings.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, cast

from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError

from modman.app.paths import appDataDir, settingsPath
from modman.core.errors import FilesystemError, MalformedDataError
from modman.core.jsonutils import readJsonFile, writeJsonFile

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_DATABASE_URL", "DEFAULT_ALERT_URL",
    "HttpSettings", "DebugSettings", "LauncherSettings", "Config",
    "defaultConfig", "loadConfig", "saveConfig", "deepMerge",
]


DEFAULT_DATABASE_URL = "https://ow-mods.github.io/ow-mod-db/database.json"
DEFAULT_ALERT_URL = "https://ow-mods.github.io/ow-mod-db/alert.json"



class HttpSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timeoutMs: int = 30_000
    retries: int = 2
    backoffBaseMs: int = 250
    backoffMaxMs: int = 1_000



class DebugSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    devModeEnabled: bool = False



class LauncherSettings(BaseModel):
    """How the game process gets started. Empty executable means <owmlPath>/OWML.Launcher.exe."""
    model_config = ConfigDict(extra="ignore")

    executable: str | None = None
    prefixArgs: list[str] = Field(default_factory=list)
    extraArgs: list[str] = Field(default_factory=list)



class Config(BaseModel):
    """Shape of settings.json consumed by the core."""
    model_config = ConfigDict(extra="ignore")

    owmlPath: str = Field(default_factory=lambda: str(appDataDir() / "OWML"))
    databaseUrl: str = DEFAULT_DATABASE_URL
    alertUrl: str = DEFAULT_ALERT_URL
    viewedAlerts: list[str] = Field(default_factory=list)
    maxConcurrentDownloads: int = Field(default=4, ge=1)
    http: HttpSettings = Field(default_factory=HttpSettings)
    debug: DebugSettings = Field(default_factory=DebugSettings)
    launcher: LauncherSettings = Field(default_factory=LauncherSettings)

    @property
    def modsPath(self) -> Path:
        return Path(self.owmlPath) / "Mods"

    def checkOwml(self) -> bool:
        """True when owmlPath holds an OWML install."""
        return (Path(self.owmlPath) / "OWML.Manifest.json").is_file()



def defaultConfig() -> Config:
    return Config()



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    Returns a new JsonValue where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, JsonValue] = {}
        for key, value in first.items():
            out[key] = cast(JsonValue, value)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], cast(JsonValue, value))
            else:
                out[key] = cast(JsonValue, value)
        return cast(JsonValue, out)

    return cast(JsonValue, second)



def _loadUserSettings(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = readJsonFile(path)
    except (OSError, ValueError) as err:
        logger.error("Failed to parse '%s': %s", path, err)
        return {}
    if not isinstance(raw, dict):
        logger.error("Ignoring '%s': top level must be an object", path)
        return {}
    return raw



def loadConfig(path: Path | None = None) -> Config:
    """
    Defaults deep-merged with the user's settings file.

    A missing or unparsable file falls back to defaults; a file that parses but
    has invalid values raises MalformedDataError so the user notices.
    """
    path = Path(path) if path is not None else settingsPath()
    merged = deepMerge(defaultConfig().model_dump(mode="json"), _loadUserSettings(path))
    try:
        return Config.model_validate(merged)
    except ValidationError as err:
        raise MalformedDataError("Invalid settings file", path=str(path)) from err



def saveConfig(config: Config, path: Path | None = None) -> Path:
    path = Path(path) if path is not None else settingsPath()
    try:
        writeJsonFile(path, config.model_dump(mode="json"))
    except OSError as err:
        raise FilesystemError("Couldn't save settings", path=str(path)) from err
    logger.info("Settings saved to '%s'", path)
    return path
