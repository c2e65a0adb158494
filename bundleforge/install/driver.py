# bundleforge/install/driver.py
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from bundleforge.app.settings import settings
from bundleforge.bundles.fulfillment import isFulfilled
from bundleforge.bundles.matcher import findPackageByReference, matchesReference, matchRepo
from bundleforge.bundles.progress import (
    ProgressEntry,
    RuleKey,
    calculateBundleSize,
    collectEntries,
    installProgress,
    relevantRuleKeys,
)
from bundleforge.bundles.types import (
    CollectionInfo,
    DependencyRule,
    DownloadModInfo,
    Package,
    Profile,
    RevisionInfo,
    RuleType,
    SourceIds,
)
from bundleforge.catalog.info_cache import InfoCache
from bundleforge.core.logging import clearLogContext, setLogContext
from bundleforge.host.api import (
    EVENT_INSTALL_DEPENDENCIES,
    EVENT_VIEW_COLLECTION,
    DialogContent,
    HostApi,
)
from bundleforge.host.events import (
    EVENT_DID_FINISH_DOWNLOAD,
    EVENT_DID_INSTALL_DEPENDENCIES,
    EVENT_DID_INSTALL_PACKAGE,
    EVENT_WILL_INSTALL_DEPENDENCIES,
    EVENT_WILL_INSTALL_PACKAGE,
    EventHub,
)
from bundleforge.host.state import AddRule, RemoveRule, SetPackageEnabled, SetPendingVote
from bundleforge.ui.notifications import (
    Notification,
    NotificationAction,
    installingNotificationId,
    unfulfilledNotificationId,
)

logger = logging.getLogger(__name__)

__all__ = ["Phase", "Session", "InstallDriver", "UpdateCB", "wireDriver"]

UpdateCB = Callable[[], None]



class Phase(str, Enum):
    PREPARE = "prepare"
    QUERY = "query"
    START = "start"
    DISCLAIMER = "disclaimer"
    INSTALLING = "installing"
    RECOMMENDATIONS = "recommendations"
    REVIEW = "review"



@dataclass
class Session:
    """The one bundle installation the driver is currently tracking."""
    profile: Profile
    bundle: Package
    phase: Phase = Phase.PREPARE
    installedPackages: list[Package] = field(default_factory=list)
    requiredRules: list[DependencyRule] = field(default_factory=list)
    installingPackage: str | None = None
    totalSize: int | None = None
    relevantRules: frozenset[RuleKey] | None = None
    revisionInfo: RevisionInfo | None = None
    collectionInfo: CollectionInfo | None = None

    @property
    def gameId(self) -> str:
        return self.profile.gameId



class InstallDriver:
    """
    Drives the installation of one bundle at a time through its phases:

        prepare -> query -> start -> (disclaimer) -> installing
                -> (recommendations) -> review -> prepare

    The driver never installs anything itself. It asks the host to install the
    bundle's dependencies and follows the install/download signals the host
    delivers back (see attach()). Every signal handler checks that it concerns
    the current session, and every coroutine re-checks the session after each
    await, so results arriving after a cancel are ignored.
    """
    def __init__(self, host: HostApi, *, infoCache: InfoCache | None = None) -> None:
        self._host = host
        self._infoCache = infoCache if infoCache is not None else InfoCache(host.catalog)
        self._session: Session | None = None
        self._installDone = False
        self._updateHandlers: list[UpdateCB] = []
        self._pending: asyncio.Future | None = None

        # One advance action per phase
        self._steps: dict[Phase, Callable[[], object]] = {
            Phase.QUERY: self._startInstall,
            Phase.START: self._begin,
            Phase.DISCLAIMER: self._closeDisclaimers,
            Phase.INSTALLING: self._finishInstalling,
            Phase.RECOMMENDATIONS: self._finishInstalling,
            Phase.REVIEW: self._close,
        }

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #

    def attach(self, hub: EventHub) -> list[Callable[[], None]]:
        """Subscribes the driver's signal handlers. Returns the unsubscribe callbacks."""
        return [
            hub.on(EVENT_WILL_INSTALL_PACKAGE, self.onWillInstallPackage),
            hub.on(EVENT_DID_INSTALL_PACKAGE, self.onDidInstallPackage),
            hub.on(EVENT_DID_FINISH_DOWNLOAD, self.onDidFinishDownload),
            hub.on(EVENT_WILL_INSTALL_DEPENDENCIES, self.onWillInstallDependencies),
            hub.on(EVENT_DID_INSTALL_DEPENDENCIES, self.onDidInstallDependencies),
        ]

    def onUpdate(self, cb: UpdateCB) -> None:
        self._updateHandlers.append(cb)

    # ------------------------------------------------------------------ #
    # Getters
    # ------------------------------------------------------------------ #

    @property
    def infoCache(self) -> InfoCache:
        return self._infoCache

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def profile(self) -> Profile | None:
        return self._session.profile if self._session is not None else None

    @property
    def phase(self) -> Phase:
        return self._session.phase if self._session is not None else Phase.PREPARE

    @property
    def bundle(self) -> Package | None:
        return self._session.bundle if self._session is not None else None

    @property
    def installedPackages(self) -> list[Package]:
        return list(self._session.installedPackages) if self._session is not None else []

    @property
    def requiredRules(self) -> list[DependencyRule]:
        return list(self._session.requiredRules) if self._session is not None else []

    @property
    def numRequired(self) -> int:
        return len(self._session.requiredRules) if self._session is not None else 0

    @property
    def installingPackage(self) -> str | None:
        return self._session.installingPackage if self._session is not None else None

    @property
    def installDone(self) -> bool:
        return self._installDone

    @property
    def collectionInfo(self) -> CollectionInfo | None:
        return self._session.collectionInfo if self._session is not None else None

    @property
    def revisionInfo(self) -> RevisionInfo | None:
        return self._session.revisionInfo if self._session is not None else None

    @property
    def collectionId(self) -> int | str | None:
        return self._sourceIds().collectionId

    @property
    def collectionSlug(self) -> str | None:
        return self._sourceIds().collectionSlug

    @property
    def revisionId(self) -> int | str | None:
        return self._sourceIds().revisionId

    @property
    def revisionNumber(self) -> int | None:
        return self._sourceIds().revisionNumber

    @property
    def progress(self) -> float:
        session = self._session
        if session is None:
            return 0.0
        return installProgress(self._entries(session), session.totalSize, session.relevantRules)

    def canContinue(self) -> bool:
        session = self._session
        if session is None:
            return False
        if session.phase == Phase.INSTALLING:
            return self._installDone
        if session.phase == Phase.DISCLAIMER:
            return bool(session.installedPackages) or self._installDone
        return True

    def canClose(self) -> bool:
        return self.phase == Phase.START

    def canHide(self) -> bool:
        return self.phase in (Phase.DISCLAIMER, Phase.INSTALLING)

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def prepare(self, func: Callable[[], Awaitable[None]]) -> None:
        """
        Queues an async preparation. Preparations run one after another, and
        query()/start() wait for every queued one before they look at state.
        Preparations report their own failures; here they are only logged.
        """
        previous = self._pending

        async def chained() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            await func()

        pending = asyncio.ensure_future(chained())
        pending.add_done_callback(self._logPrepareFailure)
        self._pending = pending

    async def query(self, profile: Profile, bundle: Package | None) -> None:
        """
        Read-only preview of a bundle: loads its metadata, installs nothing.
        The preview holds the driver like an install does; continue_() turns it
        into an install, cancel() drops it.
        """
        await self._awaitPrepared()

        if bundle is None or bundle.archiveId is None:
            return
        if self._isBusy():
            self._rejectBusy()
            return

        session = Session(profile=profile, bundle=bundle, phase=Phase.QUERY)
        self._session = session
        self._installDone = False
        setLogContext(gameId=profile.gameId, bundleId=bundle.id, phase=Phase.QUERY.value)

        session.revisionInfo = await self._loadRevisionInfo(session)
        if not self._isCurrent(session):
            return
        await self._initCollectionInfo(session)
        if self._isCurrent(session):
            self._triggerUpdate()

    async def start(self, profile: Profile, bundle: Package | None) -> None:
        """Starts installing a bundle into the profile."""
        await self._awaitPrepared()

        if bundle is None or bundle.archiveId is None:
            return
        if self._isBusy():
            self._rejectBusy()
            return

        session = Session(profile=profile, bundle=bundle)
        self._session = session
        setLogContext(gameId=profile.gameId, bundleId=bundle.id)
        self._freezeTotals(session)

        await self._startInstall()
        if self._isCurrent(session):
            await self._initCollectionInfo(session)
        self._triggerUpdate()

    async def continue_(self) -> None:
        """Runs the advance action of the current phase, if the phase allows it."""
        session = self._session
        if not self.canContinue() or session is None or session.bundle.archiveId is None:
            return

        await self._initCollectionInfo(session)
        if not self._isCurrent(session):
            return

        step = self._steps.get(session.phase)
        if step is None:
            return
        res = step()
        if inspect.isawaitable(res):
            res = await res
        if res is not False:
            self._triggerUpdate()

    def installRecommended(self) -> None:
        session = self._session
        if session is None:
            return
        self._host.emit(EVENT_INSTALL_DEPENDENCIES, session.profile.id, session.gameId, [session.bundle.id], True)
        session.phase = Phase.RECOMMENDATIONS
        self._triggerUpdate()

    def cancel(self) -> None:
        self._onStop()
        self._installDone = True
        self._triggerUpdate()

    # ------------------------------------------------------------------ #
    # Signal handlers
    # ------------------------------------------------------------------ #

    def onWillInstallPackage(self, gameId: str, archiveId: str, packageId: str | None = None) -> None:
        session = self._session
        if session is None or session.gameId != gameId:
            return
        download = self._host.state.downloads.get(archiveId)
        session.installingPackage = download.localPath if download is not None and download.localPath else archiveId
        self._triggerUpdate()

    async def onDidInstallPackage(self, gameId: str, archiveId: str | None, packageId: str) -> None:
        session = self._session
        if session is None or session.gameId != gameId:
            return
        package = self._host.state.package(gameId, packageId)
        if package is None:
            return

        # Only packages this bundle asked for count
        required = next((rule for rule in session.requiredRules if matchesReference(rule.reference, package)), None)
        if required is None:
            return

        session.installedPackages.append(package)
        self._updateProgress(session)
        self._triggerUpdate()

        bundle = session.bundle
        if required.extra.patches and bundle.installationPath is not None:
            bundlePath = self._host.installPathForGame(gameId) / bundle.installationPath
            sourceName = required.reference.description or package.displayName
            await self._host.applyPatches(bundlePath, gameId, sourceName, packageId, dict(required.extra.patches))

    def onDidFinishDownload(self, *args) -> None:
        # Cheaper to recompute than to check whether the download belongs to us
        session = self._session
        if session is not None:
            self._updateProgress(session)

    def onWillInstallDependencies(self, profileId: str, packageId: str, recommendations: bool) -> None:
        state = self._host.state
        profile = self.profile or state.profileById(profileId)
        if profile is None:
            logger.debug("Dependency install for unknown profile '%s'", profileId)
            return

        package = state.package(profile.gameId, packageId)
        if self._session is None and package is not None and package.isBundle and recommendations:
            # Optional installs can be started from outside a session. Track them
            # so per-package rules of the bundle still get applied.
            logger.info("Tracking optional dependency install of '%s'", packageId)
            self._session = Session(profile=profile, bundle=package, phase=Phase.INSTALLING)
            self._installDone = False
            self._triggerUpdate()

    async def onDidInstallDependencies(self, gameId: str, packageId: str, recommendations: bool) -> None:
        packages = self._host.state.packagesForGame(gameId)
        package = packages.get(packageId)
        if package is not None and package.isBundle:
            logger.info("Did install dependencies of '%s' (optional=%s)", packageId, recommendations)

        session = self._session
        if session is not None and session.gameId == gameId and packageId == session.bundle.id:
            await self._finishDependencyPass(session, package, packages, recommendations)

        if package is not None and package.isBundle:
            try:
                await self._host.postprocessBundle(gameId, package)
            except Exception as err:
                logger.info(
                    "Failed to apply package rules from bundle '%s'. This is normal on the "
                    "platform the bundle was created on. (%s)", packageId, err,
                )

    # ------------------------------------------------------------------ #
    # Phase actions
    # ------------------------------------------------------------------ #

    async def _startInstall(self) -> bool | None:
        session = self._session
        if session is None or session.bundle.archiveId is None:
            return False

        session.installedPackages = []
        session.installingPackage = None
        session.phase = Phase.START
        self._installDone = False
        setLogContext(phase=Phase.START.value)

        host = self._host
        bundle = session.bundle
        profile = session.profile

        session.revisionInfo = await self._loadRevisionInfo(session)
        if not self._isCurrent(session):
            return False

        self._requestVote(session)

        if not await self._confirmGameVersion(session):
            if self._isCurrent(session):
                logger.info("Install of '%s' canceled on game version mismatch", bundle.id)
                self._installDone = True
                self._onStop()
            return False
        if not self._isCurrent(session):
            return False

        host.emit(EVENT_VIEW_COLLECTION, bundle.id)
        self._updateProgress(session)

        self._augmentRules(session)

        host.dismissNotification(unfulfilledNotificationId(bundle.id))
        host.dispatch([SetPackageEnabled(profile.id, bundle.id, True)])

        required = await self._computeRequiredRules(session)
        if not self._isCurrent(session):
            return False
        session.requiredRules = required

        logger.info(
            "Starting install of bundle '%s' (rules=%d, missing=%d)",
            bundle.id, len(self._currentBundle(session).rules), len(required),
        )
        return None

    def _begin(self) -> bool | None:
        session = self._session
        if session is None or session.profile.id is None:
            return False
        self._host.emit(EVENT_INSTALL_DEPENDENCIES, session.profile.id, session.gameId, [session.bundle.id], False)
        # Disclaimers are skipped for now
        session.phase = Phase.INSTALLING
        setLogContext(phase=Phase.INSTALLING.value)
        return None

    def _closeDisclaimers(self) -> None:
        if self._session is not None:
            self._session.phase = Phase.INSTALLING

    def _finishInstalling(self) -> None:
        if self._session is not None:
            self._session.phase = Phase.REVIEW

    def _close(self) -> None:
        self._onStop()
        self._installDone = True

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _isBusy(self) -> bool:
        session = self._session
        return session is not None and not self._installDone

    def _rejectBusy(self) -> None:
        logger.warning("Rejected bundle request, another bundle is being installed")
        self._host.sendNotification(Notification(
            type="warning",
            message="Already installing a collection",
            displayMs=int(settings("notifications.alreadyInstallingMs", 5000)),
        ))

    def _isCurrent(self, session: Session) -> bool:
        return self._session is session

    async def _awaitPrepared(self) -> None:
        pending = self._pending
        self._pending = None
        if pending is not None:
            await asyncio.gather(pending, return_exceptions=True)

    def _logPrepareFailure(self, fut: asyncio.Future) -> None:
        if fut.cancelled():
            return
        err = fut.exception()
        if err is not None:
            logger.error("Queued preparation failed: %s", err, exc_info=err)

    def _onStop(self) -> None:
        session = self._session
        if session is not None:
            self._host.dismissNotification(installingNotificationId(session.bundle.id))
        self._session = None
        clearLogContext()

    def _triggerUpdate(self) -> None:
        for cb in list(self._updateHandlers):
            cb()

    def _modInfo(self, bundle: Package | None = None) -> DownloadModInfo | None:
        bundle = bundle if bundle is not None else self.bundle
        if bundle is None or bundle.archiveId is None:
            return None
        download = self._host.state.downloads.get(bundle.archiveId)
        return download.modInfo if download is not None else None

    def _sourceIds(self, bundle: Package | None = None) -> SourceIds:
        modInfo = self._modInfo(bundle)
        return modInfo.ids if modInfo is not None else SourceIds()

    def _currentBundle(self, session: Session) -> Package:
        # The store may have replaced rules since the session started
        return self._host.state.package(session.gameId, session.bundle.id) or session.bundle

    def _entries(self, session: Session) -> list[ProgressEntry]:
        state = self._host.state
        return collectEntries(
            self._currentBundle(session).rules,
            state.packagesForGame(session.gameId),
            state.downloads,
        )

    def _freezeTotals(self, session: Session) -> None:
        # Size and counted rules are taken once per session
        if session.totalSize is None:
            entries = self._entries(session)
            session.totalSize = calculateBundleSize(entries)
            session.relevantRules = relevantRuleKeys(entries)

    def _updateProgress(self, session: Session) -> None:
        self._freezeTotals(session)

        host = self._host
        bundleId = session.bundle.id
        host.sendNotification(Notification(
            id=installingNotificationId(bundleId),
            type="activity",
            title="Installing Collection",
            message=session.bundle.displayName,
            progress=installProgress(self._entries(session), session.totalSize, session.relevantRules),
            actions=[NotificationAction("Show", lambda: host.emit(EVENT_VIEW_COLLECTION, bundleId))],
        ))

    async def _loadRevisionInfo(self, session: Session) -> RevisionInfo | None:
        """Remote revision metadata, or the copy embedded in the download when that fails."""
        modInfo = self._modInfo(session.bundle)
        embedded = modInfo.revisionInfo if modInfo is not None else None
        ids = modInfo.ids if modInfo is not None else SourceIds()
        if ids.revisionId is None:
            return embedded

        info: RevisionInfo | None = None
        try:
            info = await self._infoCache.getRevisionInfo(ids.revisionId, ids.collectionSlug, ids.revisionNumber)
        except Exception as err:
            logger.error(
                "Failed to get remote info for revision %s (%s rev %s): %s",
                ids.revisionId, ids.collectionSlug, ids.revisionNumber, err,
            )
        return info if info is not None else embedded

    async def _initCollectionInfo(self, session: Session) -> None:
        if session.bundle.archiveId is None:
            return
        modInfo = self._modInfo(session.bundle)
        slug = modInfo.ids.collectionSlug if modInfo is not None else None

        info: CollectionInfo | None = None
        try:
            info = await self._infoCache.getCollectionInfo(slug)
        except Exception as err:
            logger.warning("Failed to get remote info for collection '%s': %s", slug, err)

        if info is None and modInfo is not None:
            info = modInfo.collectionInfo
        if info is None and session.revisionInfo is not None:
            # Revision cached but the collection is gone from the server
            info = session.revisionInfo.collection
        session.collectionInfo = info

    def _requestVote(self, session: Session) -> None:
        ids = self._sourceIds(session.bundle)
        if ids.revisionId is None:
            return
        state = self._host.state
        revision = session.revisionInfo
        authorId = revision.collection.user.memberId \
            if revision is not None and revision.collection is not None and revision.collection.user is not None \
            else None
        # Don't ask for a vote on your own bundle
        if str(authorId) == str(state.userId):
            return
        if str(ids.revisionId) in state.pendingVotes:
            return
        self._host.dispatch([SetPendingVote(str(ids.revisionId), ids.collectionSlug, ids.revisionNumber, time.time())])

    async def _confirmGameVersion(self, session: Session) -> bool:
        revGameVersions = session.revisionInfo.gameVersions if session.revisionInfo is not None else []
        if not revGameVersions:
            return True

        try:
            gameVersion = await self._host.getInstalledGameVersion(session.gameId)
        except Exception as err:
            logger.warning("Failed to determine version of game '%s': %s", session.gameId, err)
            gameVersion = None

        if any(gv.reference == gameVersion for gv in revGameVersions):
            return True

        choice = await self._host.showDialog(
            "question",
            "Different version",
            DialogContent(
                text="The collection was created with a different version of the game "
                     "than you have installed (\"{{actual}}\" vs \"{{intended}}\").\n"
                     "Whether this is a problem depends on the game but you may want to "
                     "check if the collection is compatible before continuing.",
                parameters={
                    "actual": gameVersion,
                    "intended": " or ".join(gv.reference for gv in revGameVersions),
                },
            ),
            ["Cancel", "Continue"],
        )
        return choice.action != "Cancel"

    def _augmentRules(self, session: Session) -> None:
        """Bakes the file names known from the revision into rules that point at catalog files."""
        modFiles = session.revisionInfo.modFiles if session.revisionInfo is not None else []
        if not modFiles:
            return

        bundle = self._currentBundle(session)
        actions: list[RemoveRule | AddRule] = []
        for rule in bundle.rules:
            if rule.reference.repo is None:
                continue
            revMod = next((modFile for modFile in modFiles if matchRepo(rule.reference, modFile.file)), None)
            if revMod is None or revMod.file is None or not revMod.file.uri:
                continue
            if rule.extra.fileName == revMod.file.uri:
                continue
            newRule = rule.model_copy(update={"extra": rule.extra.model_copy(update={"fileName": revMod.file.uri})})
            actions.append(RemoveRule(session.gameId, bundle.id, rule))
            actions.append(AddRule(session.gameId, bundle.id, newRule))

        if actions:
            self._host.dispatch(actions)

    async def _computeRequiredRules(self, session: Session) -> list[DependencyRule]:
        host = self._host
        packages = host.state.packagesForGame(session.gameId)
        installRoot = host.installPathForGame(session.gameId)

        required: list[DependencyRule] = []
        for rule in self._currentBundle(session).rules:
            if rule.type != RuleType.REQUIRES or rule.ignored:
                continue
            match = findPackageByReference(rule.reference, packages)
            if match is None:
                required.append(rule)
                continue
            if (rule.hasManifest or rule.hasInstallerChoices) and not await isFulfilled(rule, match, installRoot):
                required.append(rule)
        return required

    def _incompleteRules(self, bundle: Package, packages, types: Iterable[RuleType]) -> list[DependencyRule]:
        wanted = set(types)
        return [
            rule for rule in bundle.rules
            if rule.type in wanted
            and not rule.ignored
            and findPackageByReference(rule.reference, packages) is None
        ]

    async def _finishDependencyPass(self, session: Session, bundle: Package | None, packages, recommendations: bool) -> None:
        host = self._host
        host.dismissNotification(installingNotificationId(session.bundle.id))

        if bundle is None:
            logger.warning("Bundle '%s' disappeared during its dependency install", session.bundle.id)
            self._onStop()
            self._triggerUpdate()
            return
        # Dependency installation may have updated the bundle package
        session.bundle = bundle

        if not recommendations:
            incomplete = self._incompleteRules(bundle, packages, (RuleType.REQUIRES,))
            if not incomplete:
                await self._initCollectionInfo(session)
                if self._isCurrent(session):
                    session.phase = Phase.REVIEW
                    self._installDone = True
            else:
                logger.info("%d required rule(s) of '%s' remain unresolved", len(incomplete), bundle.id)
                self._installDone = True
                session.installingPackage = None
        else:
            incomplete = self._incompleteRules(bundle, packages, (RuleType.REQUIRES, RuleType.RECOMMENDS))
            if not incomplete:
                await self._initCollectionInfo(session)
                if self._isCurrent(session):
                    session.phase = Phase.REVIEW
                    self._installDone = True
            else:
                # Finished the optional pass with leftovers, nothing left to wait for
                self._onStop()

        self._triggerUpdate()



def wireDriver(driver: InstallDriver, hub: EventHub) -> list[Callable[[], None]]:
    return driver.attach(hub)
