# modman/core/logging/__init__.py
from __future__ import annotations

from .context import setLogContext, clearLogContext, getLogContext
from .handlers import ProgressLogHandler, installProgressHandler, removeProgressHandler
from .setup import configureLogging, getLogger

__all__ = [
    "configureLogging",
    "getLogger",
    "ProgressLogHandler",
    "installProgressHandler",
    "removeProgressHandler",
    "setLogContext",
    "clearLogContext",
    "getLogContext",
]
