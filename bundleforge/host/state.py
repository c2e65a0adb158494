# bundleforge/host/state.py
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Union

from bundleforge.bundles.types import DependencyRule, Download, Package, Profile

logger = logging.getLogger(__name__)

__all__ = [
    "AddRule",
    "RemoveRule",
    "SetPackageEnabled",
    "SetPackageAttribute",
    "SetPendingVote",
    "Action",
    "PendingVote",
    "HostState",
    "applyAction",
    "applyActions",
]



# ----- Actions -----

@dataclass(frozen=True, slots=True)
class AddRule:
    gameId: str
    packageId: str
    rule: DependencyRule



@dataclass(frozen=True, slots=True)
class RemoveRule:
    gameId: str
    packageId: str
    rule: DependencyRule



@dataclass(frozen=True, slots=True)
class SetPackageEnabled:
    profileId: str
    packageId: str
    enabled: bool



@dataclass(frozen=True, slots=True)
class SetPackageAttribute:
    gameId: str
    packageId: str
    key: str
    value: Any



@dataclass(frozen=True, slots=True)
class SetPendingVote:
    revisionId: str
    collectionSlug: str | None
    revisionNumber: int | None
    time: float



Action = Union[AddRule, RemoveRule, SetPackageEnabled, SetPackageAttribute, SetPendingVote]



# ----- State -----

@dataclass(slots=True)
class PendingVote:
    collectionSlug: str | None
    revisionNumber: int | None
    time: float



@dataclass
class HostState:
    """
    Snapshot of the host's package collection as seen by the orchestrator.
    Only the host (install/download subsystems and the reducers below)
    mutates it; the orchestrator reads it.
    """
    packages: dict[str, dict[str, Package]] = field(default_factory=dict)     # gameId -> packageId -> Package
    downloads: dict[str, Download] = field(default_factory=dict)
    profiles: dict[str, Profile] = field(default_factory=dict)
    enabled: dict[str, dict[str, bool]] = field(default_factory=dict)         # profileId -> packageId -> enabled
    pendingVotes: dict[str, PendingVote] = field(default_factory=dict)        # revisionId -> vote marker
    userId: int | str | None = None

    def packagesForGame(self, gameId: str | None) -> dict[str, Package]:
        if gameId is None:
            return {}
        return self.packages.get(gameId, {})

    def package(self, gameId: str | None, packageId: str | None) -> Package | None:
        if packageId is None:
            return None
        return self.packagesForGame(gameId).get(packageId)

    def profileById(self, profileId: str | None) -> Profile | None:
        if profileId is None:
            return None
        return self.profiles.get(profileId)

    def isEnabled(self, profileId: str, packageId: str) -> bool:
        return self.enabled.get(profileId, {}).get(packageId, False)



# ----- Reducers -----

def _sameRule(first: DependencyRule, second: DependencyRule) -> bool:
    # Rule identity is type + reference; extra data may differ between versions of a rule
    return first.type == second.type and first.reference == second.reference



def applyAction(state: HostState, action: Action) -> None:
    if isinstance(action, SetPackageEnabled):
        state.enabled.setdefault(action.profileId, {})[action.packageId] = action.enabled
        return
    if isinstance(action, SetPendingVote):
        state.pendingVotes[action.revisionId] = PendingVote(action.collectionSlug, action.revisionNumber, action.time)
        return

    package = state.package(action.gameId, action.packageId)
    if package is None:
        logger.warning("%s for unknown package '%s'", type(action).__name__, action.packageId)
        return

    if isinstance(action, AddRule):
        package.rules = [rule for rule in package.rules if not _sameRule(rule, action.rule)] + [action.rule]
    elif isinstance(action, RemoveRule):
        package.rules = [rule for rule in package.rules if not _sameRule(rule, action.rule)]
    elif isinstance(action, SetPackageAttribute):
        setattr(package.attributes, action.key, action.value)
    else:
        raise TypeError(f"Unknown action {type(action).__name__}")



def applyActions(state: HostState, actions: Iterable[Action]) -> None:
    for action in actions:
        applyAction(state, action)
