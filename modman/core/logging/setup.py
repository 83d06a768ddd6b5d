# modman/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers
from pathlib import Path
from typing import TYPE_CHECKING

from .formatters import DevFormatter, JsonFormatter

if TYPE_CHECKING:
    from modman.app.settings import Config

__all__ = [
    "NO_PROPAGATE",
    "configureLogging",
    "getLogger",
]



# Disable propagation from common libraries
NO_PROPAGATE = [
    "uvicorn", "uvicorn.access", "uvicorn.error",
    "concurrent.futures", "asyncio",
    "httpcore.connection", "httpcore.http11", "httpcore.http2",
    "httpx", "hpack",
]



def configureLogging(config: Config, *, logFile: Path | None = None) -> None:
    """
    Initiate the global logging configuration.

    Dev:
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG)

    Prod:
      - Console INFO
      - JSON file logs INFO with rotation
      - progress lines stay off the console
    """
    devMode = bool(config.debug.devModeEnabled)
    rootLevel = logging.DEBUG if devMode else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)

    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(DevFormatter())
    if not devMode:
        consoleHandler.addFilter(lambda record: record.name != "progress")
    root.addHandler(consoleHandler)

    if logFile is None:
        from modman.app.paths import logsDir
        logFile = logsDir() / "modman.log"
    try:
        logFile.parent.mkdir(parents=True, exist_ok=True)
        fileHandler = logging.handlers.RotatingFileHandler(
            logFile,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(JsonFormatter())
        root.addHandler(fileHandler)
    except OSError as err:
        root.warning("File logging disabled, can't open '%s': %s", logFile, err)

    # Per-logger tweaks (reduce noise)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("progress").setLevel(logging.INFO)



def getLogger(name: str, side: str = "") -> logging.Logger:
    return logging.getLogger(f"{side}.{name}" if side else name)
