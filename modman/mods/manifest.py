# modman/mods/manifest.py
from __future__ import annotations
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["ModWarning", "ModManifest", "ModStubConfig", "OWML_UNIQUE_NAME"]


# Unique name of the mod loader. It is always installed next to Mods/, never inside it.
OWML_UNIQUE_NAME = "Alek.OWML"



class ModWarning(BaseModel):
    """Shown to the user before launching the game with this mod enabled."""
    model_config = ConfigDict(extra="ignore")

    title: str
    body: str



class ModManifest(BaseModel):
    """Represents a validated manifest.json."""
    model_config = ConfigDict(extra="ignore")

    uniqueName: str
    name: str
    author: str
    version: str
    description: str | None = None
    filename: str | None = None
    owmlVersion: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    pathsToPreserve: list[str] = Field(default_factory=list)
    warning: ModWarning | None = None

    @field_validator("dependencies", "conflicts", "pathsToPreserve", mode="before")
    @classmethod
    def _nullAsEmpty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("uniqueName")
    @classmethod
    def _nonEmpty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("uniqueName must not be empty")
        return value



class ModStubConfig(BaseModel):
    """The part of config.json the manager owns. Other keys are carried through untouched."""
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    settings: dict[str, Any] | None = None

    def toJson(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
