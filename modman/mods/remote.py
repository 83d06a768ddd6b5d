# modman/mods/remote.py
from __future__ import annotations
import logging
from collections.abc import Iterator, Mapping
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from modman.app.settings import HttpSettings
from modman.core.errors import MalformedDataError, NetworkError
from modman.http.client import HTTPError, request
from modman.mods.manifest import OWML_UNIQUE_NAME
from modman.mods.search import searchRanked

logger = logging.getLogger(__name__)

__all__ = ["AlertSeverity", "Alert", "Prerelease", "RemoteMod", "RemoteDatabase", "fetchAlert", "fetchJson"]



class AlertSeverity(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"



class Alert(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    enabled: bool = False
    severity: AlertSeverity = AlertSeverity.info
    message: str = ""
    url: str | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _lenientSeverity(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return lowered if lowered in AlertSeverity.__members__ else AlertSeverity.info
        return value



class Prerelease(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    version: str
    downloadUrl: str



class RemoteMod(BaseModel):
    """One registry entry. Snapshots are shared between readers, so entries are immutable."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    uniqueName: str
    name: str
    author: str = ""
    description: str = ""
    version: str
    downloadUrl: str
    downloadCount: int = 0
    dependencies: tuple[str, ...] = ()
    required: bool = False
    prerelease: Prerelease | None = None
    repo: str | None = None
    tags: tuple[str, ...] = ()

    @field_validator("dependencies", "tags", mode="before")
    @classmethod
    def _nullAsEmpty(cls, value: Any) -> Any:
        return () if value is None else value

    @field_validator("downloadCount", mode="before")
    @classmethod
    def _nullAsZero(cls, value: Any) -> Any:
        return 0 if value is None else value



async def fetchJson(url: str, *, http: HttpSettings | None = None) -> Any:
    """GET `url` and return the parsed JSON body."""
    http = http or HttpSettings()
    try:
        resp = await request(
            "GET",
            url,
            timeoutMs=http.timeoutMs,
            retries=http.retries,
            backoffBaseMs=http.backoffBaseMs,
            backoffMaxMs=http.backoffMaxMs,
        )
    except HTTPError as err:
        raise NetworkError(f"Server error fetching {url} (HTTP {err.status})") from err
    except httpx.HTTPError as err:
        raise NetworkError(f"Couldn't reach {url}") from err

    if resp["status"] >= 400:
        raise NetworkError(f"Failed to fetch {url} (HTTP {resp['status']})")
    if "json" not in resp:
        raise MalformedDataError(f"Response from {url} is not JSON")
    return resp["json"]



class RemoteDatabase:
    """Registry snapshot: unique name -> RemoteMod, plus per-mod alerts."""
    def __init__(self, mods: Mapping[str, RemoteMod] | None = None, alerts: Mapping[str, Alert] | None = None) -> None:
        self.mods: dict[str, RemoteMod] = dict(mods or {})
        self.alerts: dict[str, Alert] = dict(alerts or {})

    @classmethod
    def fromDocument(cls, doc: Any) -> RemoteDatabase:
        """Accepts a bare list of releases or {"releases": [...], "alerts": {...}}."""
        if isinstance(doc, list):
            rawReleases: Any = doc
            rawAlerts: Any = {}
        elif isinstance(doc, dict) and "releases" in doc:
            rawReleases = doc.get("releases") or []
            rawAlerts = doc.get("alerts") or {}
        else:
            raise MalformedDataError("Database document must be a list or an object with 'releases'")

        if not isinstance(rawReleases, list) or not isinstance(rawAlerts, dict):
            raise MalformedDataError("Database 'releases' must be a list and 'alerts' an object")

        try:
            releases = [RemoteMod.model_validate(item) for item in rawReleases]
            alerts = {str(name): Alert.model_validate(raw) for name, raw in rawAlerts.items()}
        except ValidationError as err:
            raise MalformedDataError("Invalid entry in remote database") from err

        mods: dict[str, RemoteMod] = {}
        for remoteMod in releases:
            if remoteMod.uniqueName in mods:
                logger.warning("Remote database lists '%s' twice, keeping the first entry", remoteMod.uniqueName)
                continue
            mods[remoteMod.uniqueName] = remoteMod
        return cls(mods, alerts)

    @classmethod
    async def fetch(cls, url: str, *, http: HttpSettings | None = None) -> RemoteDatabase:
        doc = await fetchJson(url, http=http)
        db = cls.fromDocument(doc)
        logger.info("Remote database loaded: %d mods from %s", len(db.mods), url)
        return db

    def getMod(self, uniqueName: str) -> RemoteMod | None:
        return self.mods.get(uniqueName)

    def getOwml(self) -> RemoteMod | None:
        return self.mods.get(OWML_UNIQUE_NAME)

    def getAlert(self, uniqueName: str) -> Alert | None:
        return self.alerts.get(uniqueName)

    def all(self) -> Iterator[RemoteMod]:
        return iter(self.mods.values())

    def search(self, query: str) -> list[RemoteMod]:
        return searchRanked(self.mods.values(), query, keys=lambda remoteMod: (remoteMod.uniqueName, remoteMod.name))

    def __len__(self) -> int:
        return len(self.mods)

    def __contains__(self, uniqueName: object) -> bool:
        return uniqueName in self.mods



async def fetchAlert(url: str, *, http: HttpSettings | None = None) -> Alert:
    doc = await fetchJson(url, http=http)
    try:
        return Alert.model_validate(doc)
    except ValidationError as err:
        raise MalformedDataError(f"Invalid alert document at {url}") from err
