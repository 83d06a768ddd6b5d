# modman/mods/updates.py
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modman.mods.local import LocalMod
    from modman.mods.remote import RemoteDatabase, RemoteMod

__all__ = ["checkModNeedsUpdate"]



def checkModNeedsUpdate(localMod: LocalMod, remoteDb: RemoteDatabase) -> tuple[bool, RemoteMod | None]:
    """
    Plain version-string inequality against the registry, no semver ordering.

    A local version equal to the remote prerelease version counts as up to date,
    so users who opted into a prerelease aren't nagged to "update" back.
    """
    remoteMod = remoteDb.getMod(localMod.uniqueName)
    if remoteMod is None:
        return False, None
    if remoteMod.prerelease is not None and remoteMod.prerelease.version == localMod.manifest.version:
        return False, remoteMod
    return remoteMod.version != localMod.manifest.version, remoteMod
