# modman/core/errors.py
from __future__ import annotations

__all__ = [
    "ModManagerError", "NotFoundError", "MalformedDataError", "NetworkError",
    "FilesystemError", "AlreadyInProgressError", "LogServerError",
]



class ModManagerError(Exception):
    """Base class for every error raised by the mod manager core."""
    def __init__(self, message: str, *, uniqueName: str | None = None, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.uniqueName = uniqueName
        self.path = path
    
    def __str__(self) -> str:
        parts = [self.message]
        if self.uniqueName:
            parts.append(f"mod={self.uniqueName}")
        if self.path:
            parts.append(f"path={self.path}")
        if self.__cause__ is not None:
            parts.append(f"cause={self.__cause__}")
        return " | ".join(parts)



class NotFoundError(ModManagerError):
    """Unique name, file or directory is absent."""
    pass



class MalformedDataError(ModManagerError):
    """Manifest, config or archive could not be parsed."""
    pass



class NetworkError(ModManagerError):
    """Registry fetch or download failed."""
    pass



class FilesystemError(ModManagerError):
    """Permissions, disk space, missing directories."""
    pass



class AlreadyInProgressError(ModManagerError):
    """Target is already busy. Callers turn this into a silent no-op."""
    pass



class LogServerError(ModManagerError):
    """The log streaming socket could not be acquired."""
    pass
