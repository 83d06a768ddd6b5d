# modman/mods/validate.py
from __future__ import annotations
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from modman.core.errors import ModManagerError
from modman.mods.local import LocalDatabase, LocalMod, ModValidationError, ModValidationErrorKind

if TYPE_CHECKING:
    from modman.mods.remote import RemoteDatabase, RemoteMod

logger = logging.getLogger(__name__)

__all__ = [
    "ModProblem", "FixOutcome", "checkModErrors", "attachValidationErrors",
    "validateDatabase", "hasDisabledDeps", "fixDeps",
]

# Kinds computed from the dependency graph. Refreshing replaces exactly these.
GRAPH_ERROR_KINDS = frozenset({
    ModValidationErrorKind.MissingDep,
    ModValidationErrorKind.DisabledDep,
    ModValidationErrorKind.ConflictingMod,
})



@dataclass(frozen=True)
class ModProblem:
    uniqueName: str
    error: ModValidationError



@dataclass(frozen=True)
class FixOutcome:
    dependency: str
    kind: ModValidationErrorKind
    fixed: bool
    error: str | None = None



def checkModErrors(localMod: LocalMod, localDb: LocalDatabase) -> list[ModValidationError]:
    """Graph problems of a single mod. Disabled mods have none."""
    if not localMod.enabled or localMod.isLoader:
        return []
    errors: list[ModValidationError] = []
    for dep in dict.fromkeys(localMod.manifest.dependencies):
        depMod = localDb.getMod(dep)
        if depMod is None:
            errors.append(ModValidationError(ModValidationErrorKind.MissingDep, dep))
        elif not depMod.enabled:
            errors.append(ModValidationError(ModValidationErrorKind.DisabledDep, dep))
    for conflict in dict.fromkeys(localMod.manifest.conflicts):
        other = localDb.getMod(conflict)
        if other is not None and other.enabled:
            errors.append(ModValidationError(ModValidationErrorKind.ConflictingMod, conflict))
    return errors



def attachValidationErrors(localDb: LocalDatabase) -> None:
    """Replaces graph errors on every valid mod. Other kinds (e.g. Outdated) are kept."""
    for localMod in localDb.valid():
        kept = [err for err in localMod.errors if err.kind not in GRAPH_ERROR_KINDS]
        localMod.errors = kept + checkModErrors(localMod, localDb)



def validateDatabase(localDb: LocalDatabase) -> list[ModProblem]:
    """Read-only. Each (mod, dependency) pair shows up once, however often it's declared."""
    problems: list[ModProblem] = []
    for localMod in localDb.active():
        for error in checkModErrors(localMod, localDb):
            problems.append(ModProblem(localMod.uniqueName, error))
    return problems



def hasDisabledDeps(localMod: LocalMod, localDb: LocalDatabase) -> bool:
    for dep in localMod.manifest.dependencies:
        depMod = localDb.getMod(dep)
        if depMod is not None and not depMod.enabled:
            return True
    return False



async def fixDeps(
    localMod: LocalMod,
    localDb: LocalDatabase,
    remoteDb: RemoteDatabase,
    *,
    install: Callable[[RemoteMod], Awaitable[object]],
    enable: Callable[[LocalMod], Awaitable[object] | object],
) -> list[FixOutcome]:
    """
    One corrective action per problem of `localMod`: install what's missing
    (from the remote database), enable what's disabled. A failing action is
    recorded and the rest still run. Conflicts can't be fixed automatically.
    """
    outcomes: list[FixOutcome] = []
    # A disabled mod is checked as if enabled, so it can be fixed up before the user turns it on
    problems = checkModErrors(replace(localMod, enabled=True), localDb)

    for problem in problems:
        dep = problem.detail
        try:
            match problem.kind:
                case ModValidationErrorKind.MissingDep:
                    remoteMod = remoteDb.getMod(dep)
                    if remoteMod is None:
                        outcomes.append(FixOutcome(dep, problem.kind, False, "Not found in the remote database"))
                        continue
                    await install(remoteMod)
                case ModValidationErrorKind.DisabledDep:
                    depMod = localDb.getMod(dep)
                    if depMod is None:
                        outcomes.append(FixOutcome(dep, problem.kind, False, "No longer installed"))
                        continue
                    maybeAwaitable = enable(depMod)
                    if isinstance(maybeAwaitable, Awaitable):
                        await maybeAwaitable
                case _:
                    outcomes.append(FixOutcome(dep, problem.kind, False, "Conflicts must be resolved manually"))
                    continue
        except ModManagerError as err:
            logger.warning("Couldn't fix %s '%s' for '%s': %s", problem.kind.value, dep, localMod.uniqueName, err)
            outcomes.append(FixOutcome(dep, problem.kind, False, str(err)))
            continue
        outcomes.append(FixOutcome(dep, problem.kind, True))

    return outcomes
