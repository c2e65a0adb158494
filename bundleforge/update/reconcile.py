# bundleforge/update/reconcile.py
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping

from bundleforge.app.settings import settings
from bundleforge.bundles.matcher import findPackageByReference, matchesReference
from bundleforge.bundles.types import DependencyRule, DownloadModInfo, Package, RuleType, SourceIds
from bundleforge.core.errors import AlreadyDownloadedError, CanceledError
from bundleforge.core.utils import sanitizeFilename
from bundleforge.host.api import DialogCheckbox, DialogContent, HostApi
from bundleforge.host.events import EVENT_BUNDLE_UPDATE, EventHub
from bundleforge.host.state import SetPackageAttribute
from bundleforge.install.driver import InstallDriver

logger = logging.getLogger(__name__)

__all__ = [
    "findObsoletePackages",
    "updateBundle",
    "onBundleUpdate",
    "attach",
]

_DEPENDENCY_TYPES = (RuleType.REQUIRES, RuleType.RECOMMENDS)

_REMOVE_TITLE = "Remove mods from old revision?"



def _references(rules: Iterable[DependencyRule] | None, package: Package) -> bool:
    return any(
        rule.type in _DEPENDENCY_TYPES and matchesReference(rule.reference, package)
        for rule in (rules or [])
    )



def findObsoletePackages(
    packages: Mapping[str, Package],
    oldRules: Iterable[DependencyRule],
    newRules: Iterable[DependencyRule],
    oldPackageId: str,
    newPackageId: str | None,
) -> list[Package]:
    """
    Packages the old revision pulled in as dependencies that nothing needs any more.

    A candidate is an installed package matched by a requires/recommends rule of
    the old revision and flagged installedAsDependency. It is obsolete unless the
    new revision references it, or any other package outside the candidate set
    (and other than the old/new bundle) does.
    """
    candidates: list[Package] = []
    seen: set[str] = set()
    for rule in oldRules:
        if rule.type not in _DEPENDENCY_TYPES:
            continue
        package = findPackageByReference(rule.reference, packages)
        if package is None or not package.attributes.installedAsDependency or package.id in seen:
            continue
        seen.add(package.id)
        candidates.append(package)

    newRules = list(newRules)
    others = [
        package for package in packages.values()
        if package.id not in seen and package.id not in (oldPackageId, newPackageId)
    ]

    # The new revision is the most likely to still need it, check that first
    return [
        package for package in candidates
        if not _references(newRules, package)
        and not any(_references(other.rules, package) for other in others)
    ]



async def _chooseObsolete(host: HostApi, obsolete: list[Package], bundleName: str) -> tuple[list[str], list[str]]:
    """Asks which obsolete packages to remove. Returns (keep, remove) package ids."""
    ids = [package.id for package in obsolete]
    if not ids:
        return [], []

    result = await host.showDialog(
        "question",
        _REMOVE_TITLE,
        DialogContent(
            text="There are {{count}} mods installed that are not present in the latest "
                 "revision of \"{{collectionName}}\". It is recommended that you remove the "
                 "unused mods to avoid compatibility issues going forward. "
                 "If you choose to keep the mods installed they will no longer be associated "
                 "with this Collection and will be managed as if they have been installed "
                 "individually. Would you like to remove the old mods now?",
            parameters={"count": len(ids), "collectionName": bundleName},
        ),
        ["Keep All", "Review Mods", "Remove All"],
    )
    if result.action == "Keep All":
        return ids, []
    if result.action == "Remove All":
        return [], ids

    review = await host.showDialog(
        "question",
        _REMOVE_TITLE,
        DialogContent(
            text="The following mods are not present in the latest revision of "
                 "\"{{collectionName}}\". Please select the ones to remove.",
            parameters={"collectionName": bundleName},
            checkboxes=[DialogCheckbox(package.id, package.displayName, True) for package in obsolete],
        ),
        ["Keep All", "Remove selected"],
    )
    if review.action == "Keep All":
        return ids, []

    keep: list[str] = []
    remove: list[str] = []
    for packageId in ids:
        # Unanswered checkboxes keep the package
        (remove if review.input.get(packageId) else keep).append(packageId)
    return keep, remove



async def _updateBundle(host: HostApi, gameId: str, slug: str, revisionNumber: int | str, oldPackageId: str) -> None:
    catalog = host.catalog

    latest = await catalog.getRevision(slug, int(revisionNumber))
    if latest is None:
        raise ValueError(f'Invalid revision "{slug}:{revisionNumber}"')
    collection = latest.collection
    if collection is None or collection.slug != slug:
        raise ValueError(f'Invalid collection "{slug}"')
    if not latest.downloadLink:
        raise ValueError(f'Revision "{slug}:{revisionNumber}" has no download link')

    modInfo = DownloadModInfo(
        game=gameId,
        source=settings("catalog.sourceTag", "nexus"),
        name=collection.name,
        ids=SourceIds(
            gameId=gameId,
            collectionId=collection.id,
            collectionSlug=slug,
            revisionId=latest.id,
            revisionNumber=latest.revision,
        ),
        revisionInfo=latest,
        collectionInfo=collection,
    )

    urls = await catalog.resolveDownloadUrls(latest.downloadLink)
    fileName = f"{sanitizeFilename(collection.name or slug)}-rev{latest.revision}.7z"
    try:
        downloadId = await host.startDownload([url.URI for url in urls], modInfo, fileName)
    except AlreadyDownloadedError as err:
        downloadId = err.downloadId or next(
            (dlId for dlId, download in host.state.downloads.items() if download.localPath == err.fileName),
            None,
        )
        if downloadId is None:
            raise
        logger.info("Revision archive '%s' already downloaded, reusing '%s'", err.fileName, downloadId)

    oldPackage = host.state.package(gameId, oldPackageId)
    oldRules = list(oldPackage.rules) if oldPackage is not None else []

    newPackageId = await host.startInstallDownload(downloadId)

    packages = host.state.packagesForGame(gameId)
    newPackage = packages.get(newPackageId)
    obsolete = findObsoletePackages(
        packages,
        oldRules,
        newPackage.rules if newPackage is not None else [],
        oldPackageId,
        newPackageId,
    )
    logger.info("Updated '%s' to revision %s, %d obsolete package(s)", slug, latest.revision, len(obsolete))

    bundleName = collection.name or (oldPackage.displayName if oldPackage is not None else slug)
    keep, remove = await _chooseObsolete(host, obsolete, bundleName)

    # Kept packages are now managed individually, don't ask about them again
    if keep:
        host.dispatch([SetPackageAttribute(gameId, packageId, "installedAsDependency", False) for packageId in keep])

    await host.removePackages(gameId, [oldPackageId, *remove])



async def updateBundle(host: HostApi, gameId: str, slug: str, revisionNumber: int | str, oldPackageId: str) -> None:
    """Downloads and installs a newer revision, then retires the old one and what only it needed."""
    try:
        await _updateBundle(host, gameId, slug, revisionNumber, oldPackageId)
    except CanceledError as err:
        logger.info("Update of '%s' canceled: %s", slug, err)
    except Exception as err:
        logger.error("Failed to download revision %s of '%s': %s", revisionNumber, slug, err, exc_info=True)
        host.showErrorNotification("Failed to download collection", err)



def onBundleUpdate(host: HostApi, driver: InstallDriver) -> Callable[..., None]:
    """Handler for the newer-revision signal. Updates run queued behind other preparations."""
    def handler(gameId: str, slug: str, revisionNumber: int | str | None, sourceTag: str, oldPackageId: str) -> None:
        if sourceTag != settings("catalog.sourceTag", "nexus") or revisionNumber is None:
            return

        async def run() -> None:
            try:
                await updateBundle(host, gameId, slug, revisionNumber, oldPackageId)
            except Exception as err:
                host.showErrorNotification("Failed to update collection", err)

        driver.prepare(run)
    return handler



def attach(hub: EventHub, host: HostApi, driver: InstallDriver) -> Callable[[], None]:
    return hub.on(EVENT_BUNDLE_UPDATE, onBundleUpdate(host, driver))
