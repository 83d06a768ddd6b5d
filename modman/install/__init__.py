from __future__ import annotations

from .archive import extractMod, extractOwml, findManifest, validateArchive
from .busy import BusySet
from .download import downloadArchive
from .orchestrator import InstallOutcome, Orchestrator

__all__ = [
    "BusySet",
    "InstallOutcome",
    "Orchestrator",
    "downloadArchive",
    "extractMod",
    "extractOwml",
    "findManifest",
    "validateArchive",
]
