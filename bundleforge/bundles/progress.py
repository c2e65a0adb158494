# bundleforge/bundles/progress.py
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from bundleforge.bundles.matcher import findDownloadsByReference, findPackageByReference
from bundleforge.bundles.types import (
    DependencyRule,
    Download,
    Package,
    PackageReference,
    PackageState,
    RuleType,
)

RuleKey = tuple[RuleType, PackageReference]

__all__ = [
    "ProgressEntry",
    "collectEntries",
    "RuleKey",
    "ruleKey",
    "isRelevant",
    "relevantRuleKeys",
    "calculateBundleSize",
    "installProgress",
]



@dataclass(frozen=True, slots=True)
class ProgressEntry:
    """One requires/recommends rule of a bundle and what currently satisfies it."""
    rule: DependencyRule
    package: Package | None = None
    download: Download | None = None

    @property
    def state(self) -> PackageState | None:
        if self.package is not None and self.package.state is not None:
            return self.package.state
        if self.download is not None:
            return PackageState.DOWNLOADED if self.download.state == "finished" else PackageState.DOWNLOADING
        return None

    @property
    def fileSize(self) -> int:
        if self.package is not None and self.package.attributes.fileSize:
            return self.package.attributes.fileSize
        if self.rule.reference.fileSize:
            return self.rule.reference.fileSize
        if self.download is not None:
            return self.download.size
        return 0

    @property
    def receivedBytes(self) -> int:
        return self.download.received if self.download is not None else 0



def _pickDownload(rule: DependencyRule, package: Package | None, downloads: Mapping[str, Download]) -> Download | None:
    if package is not None and package.archiveId is not None:
        return downloads.get(package.archiveId)
    matching = findDownloadsByReference(rule.reference, downloads)
    if not matching:
        return None
    # Prefer the transfer that is still running
    unfinished = [download for download in matching if download.state != "finished"]
    return (unfinished or matching)[0]



def collectEntries(
    rules: Iterable[DependencyRule],
    packages: Mapping[str, Package],
    downloads: Mapping[str, Download],
) -> list[ProgressEntry]:
    entries: list[ProgressEntry] = []
    for rule in rules:
        if rule.type not in (RuleType.REQUIRES, RuleType.RECOMMENDS):
            continue
        package = findPackageByReference(rule.reference, packages)
        entries.append(ProgressEntry(rule=rule, package=package, download=_pickDownload(rule, package, downloads)))
    return entries



def ruleKey(rule: DependencyRule) -> RuleKey:
    # Survives rule augmentation, which only touches `extra`
    return (rule.type, rule.reference)



def isRelevant(entry: ProgressEntry) -> bool:
    """Counts toward totals: not ignored, and either required or already being fetched."""
    if entry.rule.ignored:
        return False
    return entry.rule.type == RuleType.REQUIRES or entry.state is not None



def relevantRuleKeys(entries: Iterable[ProgressEntry]) -> frozenset[RuleKey]:
    """Snapshot of the rules that count, taken together with the bundle size."""
    return frozenset(ruleKey(entry.rule) for entry in entries if isRelevant(entry))



def calculateBundleSize(entries: Iterable[ProgressEntry]) -> int:
    return sum(entry.fileSize for entry in entries if isRelevant(entry))



def installProgress(
    entries: Iterable[ProgressEntry],
    totalSize: int | None,
    relevantKeys: frozenset[RuleKey] | None = None,
) -> float:
    """
    Completion percentage in [0, 100]. Downloading and installing each weigh
    half. Recomputed from the current state on every call.

    With `relevantKeys` only the rules in that snapshot count, so entries that
    start downloading later (recommendations) can't grow the denominator of a
    fixed `totalSize`.
    """
    if relevantKeys is None:
        relevant = [entry for entry in entries if isRelevant(entry)]
    else:
        relevant = [entry for entry in entries if not entry.rule.ignored and ruleKey(entry.rule) in relevantKeys]

    downloadProgress = 0
    for entry in relevant:
        if entry.state in (PackageState.DOWNLOADING, None):
            downloadProgress += entry.receivedBytes
        else:
            downloadProgress += entry.fileSize

    installed = sum(1 for entry in relevant if entry.state == PackageState.INSTALLED)

    dlPerc = min(1.0, downloadProgress / totalSize) if totalSize else 0.0
    instPerc = min(1.0, installed / len(relevant)) if relevant else 0.0

    return (dlPerc + instPerc) * 50.0
