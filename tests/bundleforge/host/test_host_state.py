# tests/bundleforge/host/test_host_state.py
import pytest

from bundleforge.bundles.types import (
    DependencyRule,
    Package,
    PackageReference,
    Profile,
    RuleExtra,
    RuleType,
)
from bundleforge.host.state import (
    AddRule,
    HostState,
    RemoveRule,
    SetPackageAttribute,
    SetPackageEnabled,
    SetPendingVote,
    applyAction,
    applyActions,
)


def _state() -> HostState:
    state = HostState(userId=1)
    state.profiles["p1"] = Profile(id="p1", gameId="game")
    state.packages["game"] = {"bundle": Package(id="bundle", type="collection")}
    return state


def _rule(name: str, fileName: str | None = None) -> DependencyRule:
    return DependencyRule(
        type=RuleType.REQUIRES,
        reference=PackageReference(logicalFileName=name),
        extra=RuleExtra(fileName=fileName),
    )


def test_add_rule_replaces_same_reference():
    state = _state()
    applyActions(state, [AddRule("game", "bundle", _rule("A")), AddRule("game", "bundle", _rule("B"))])
    applyAction(state, AddRule("game", "bundle", _rule("A", "a.7z")))

    rules = state.package("game", "bundle").rules
    assert [rule.reference.logicalFileName for rule in rules] == ["B", "A"]
    assert rules[-1].extra.fileName == "a.7z"


def test_remove_then_add_batch():
    state = _state()
    old = _rule("A")
    state.package("game", "bundle").rules = [old, _rule("B")]

    applyActions(state, [RemoveRule("game", "bundle", old), AddRule("game", "bundle", _rule("A", "a.7z"))])

    rules = state.package("game", "bundle").rules
    assert [(rule.reference.logicalFileName, rule.extra.fileName) for rule in rules] == [("B", None), ("A", "a.7z")]


def test_set_package_enabled_and_attribute():
    state = _state()
    applyActions(state, [
        SetPackageEnabled("p1", "bundle", True),
        SetPackageAttribute("game", "bundle", "collectionId", 55),
        SetPackageAttribute("game", "bundle", "installedAsDependency", True),
    ])

    assert state.isEnabled("p1", "bundle") is True
    assert state.isEnabled("p1", "other") is False
    attributes = state.package("game", "bundle").attributes
    assert attributes.collectionId == 55
    assert attributes.installedAsDependency is True


def test_pending_vote():
    state = _state()
    applyAction(state, SetPendingVote("30", "my-bundle", 3, 1700000000.0))
    assert state.pendingVotes["30"].revisionNumber == 3


def test_unknown_package_is_logged(caplog):
    state = _state()
    applyAction(state, AddRule("game", "missing", _rule("A")))
    assert "unknown package 'missing'" in caplog.text


def test_unknown_action_type():
    class Bogus:
        gameId = "game"
        packageId = "bundle"

    with pytest.raises(TypeError):
        applyAction(_state(), Bogus())


def test_lookups_tolerate_none():
    state = _state()
    assert state.packagesForGame(None) == {}
    assert state.package("game", None) is None
    assert state.profileById(None) is None
    assert state.profileById("p1").gameId == "game"
