# modman/mods/owml_config.py
from __future__ import annotations
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from modman.core.errors import FilesystemError, MalformedDataError, NotFoundError
from modman.core.jsonutils import readJsonFile, writeJsonFile

logger = logging.getLogger(__name__)

__all__ = ["OwmlConfig", "readOwmlConfig", "writeOwmlConfig", "OWML_CONFIG_FILE", "OWML_DEFAULT_CONFIG_FILE"]

OWML_CONFIG_FILE = "OWML.Config.json"
OWML_DEFAULT_CONFIG_FILE = "OWML.DefaultConfig.json"



class OwmlConfig(BaseModel):
    """The loader's own settings file. Keys the manager doesn't know are carried through."""
    model_config = ConfigDict(extra="allow")

    gamePath: str = ""
    debugMode: bool = False
    forceExe: bool = False
    incrementalGC: bool = False



def _load(path: Path) -> OwmlConfig:
    try:
        return OwmlConfig.model_validate(readJsonFile(path))
    except OSError as err:
        raise FilesystemError("Can't read OWML config", path=str(path)) from err
    except (ValueError, ValidationError) as err:
        raise MalformedDataError("Invalid OWML config", path=str(path)) from err



def writeOwmlConfig(owmlPath: str | Path, config: OwmlConfig) -> Path:
    path = Path(owmlPath) / OWML_CONFIG_FILE
    try:
        writeJsonFile(path, config.model_dump(mode="json"))
    except OSError as err:
        raise FilesystemError("Couldn't save OWML config", path=str(path)) from err
    return path



def readOwmlConfig(owmlPath: str | Path) -> OwmlConfig:
    """
    Reads <owmlPath>/OWML.Config.json. When it doesn't exist yet it is created
    from the loader's OWML.DefaultConfig.json; with neither present the loader
    isn't installed and NotFoundError is raised.
    """
    owmlPath = Path(owmlPath)
    configPath = owmlPath / OWML_CONFIG_FILE
    if configPath.is_file():
        return _load(configPath)

    defaultPath = owmlPath / OWML_DEFAULT_CONFIG_FILE
    if not defaultPath.is_file():
        raise NotFoundError("OWML config not found", path=str(configPath))
    config = _load(defaultPath)
    writeOwmlConfig(owmlPath, config)
    logger.info("Created '%s' from defaults", configPath)
    return config
