# modman/app/paths.py
from __future__ import annotations
import os
from pathlib import Path

__all__ = ["PACKAGE_DIR", "appDataDir", "logsDir", "gameLogsDir", "settingsPath", "tempDir"]



PACKAGE_DIR = Path(__file__).resolve().parent.parent # modman/



def appDataDir() -> Path:
    """Root for everything the manager persists. MODMAN_HOME overrides ~/.modman."""
    override = os.environ.get("MODMAN_HOME")
    if override:
        return Path(override).expanduser()
    return Path(os.path.expanduser("~/.modman"))



def logsDir() -> Path:
    return appDataDir() / "logs"



def gameLogsDir() -> Path:
    return appDataDir() / "game_logs"



def settingsPath() -> Path:
    return appDataDir() / "settings.json"



def tempDir() -> Path:
    """Scratch space for downloaded archives."""
    return appDataDir() / "tmp"
