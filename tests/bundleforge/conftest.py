from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
import sys
from typing import Any

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from bundleforge.bundles.types import CollectionInfo, Download, DownloadUrl, Package, Profile, RevisionInfo
from bundleforge.host.api import DialogResult
from bundleforge.host.state import HostState, applyActions
from bundleforge.ui.notifications import Notification


class FakeCatalog:
    """In-memory catalog. Lookups are recorded in `calls`."""

    def __init__(self) -> None:
        self.collections: dict[str, CollectionInfo] = {}
        self.revisions: dict[tuple[str, int], RevisionInfo] = {}
        self.revisionsById: dict[str, RevisionInfo] = {}
        self.downloadUrls: dict[str, list[DownloadUrl]] = {}
        self.calls: list[tuple[Any, ...]] = []

    async def getCollection(self, slug: str) -> CollectionInfo | None:
        self.calls.append(("getCollection", slug))
        return self.collections.get(slug)

    async def getRevision(self, slug: str, revisionNumber: int) -> RevisionInfo | None:
        self.calls.append(("getRevision", slug, revisionNumber))
        return self.revisions.get((slug, revisionNumber))

    async def getRevisionById(self, revisionId) -> RevisionInfo | None:
        self.calls.append(("getRevisionById", revisionId))
        return self.revisionsById.get(str(revisionId))

    async def resolveDownloadUrls(self, downloadLink: str) -> list[DownloadUrl]:
        self.calls.append(("resolveDownloadUrls", downloadLink))
        return self.downloadUrls.get(downloadLink, [])


class FakeHost:
    """
    In-memory host: the real reducers over a HostState, plus recorders for
    everything the orchestrator sends out.
    """

    def __init__(self, installRoot: Path, catalog: FakeCatalog | None = None) -> None:
        self.catalog = catalog if catalog is not None else FakeCatalog()
        self._state = HostState(userId="me")
        self.installRoot = installRoot

        self.emitted: list[tuple[str, tuple[Any, ...]]] = []
        self.sent: list[Notification] = []
        self.notifications: dict[str, Notification] = {}
        self.dismissed: list[str] = []
        self.errors: list[tuple[str, Any]] = []
        self.dispatched: list[list[Any]] = []

        self.dialogs: list[tuple[str, Any, list[str]]] = []
        self.dialogAnswers: list[DialogResult] = []
        self.dialogGate: asyncio.Event | None = None

        self.gameVersion: str | None = None
        self.patches: list[tuple[Any, ...]] = []
        self.postprocessed: list[str] = []

        self.downloadsStarted: list[tuple[list[str], Any, str]] = []
        self.downloadError: Exception | None = None
        self.installedDownloads: list[str] = []
        self.onInstallDownload: Callable[[str], str] | None = None
        self.removed: list[tuple[str, list[str]]] = []

        self.bundleInfo: dict[str, Any] = {"info": {}, "mods": []}
        self.bundleInfoErrors: list[tuple[str, dict[str, Any] | None]] = []
        self.submitted: list[dict[str, Any]] = []
        self.submitError: Exception | None = None

    # ----- Setup helpers -----

    def addProfile(self, profile: Profile) -> Profile:
        self._state.profiles[profile.id] = profile
        return profile

    def addPackage(self, gameId: str, package: Package) -> Package:
        self._state.packages.setdefault(gameId, {})[package.id] = package
        return package

    def addDownload(self, download: Download) -> Download:
        self._state.downloads[download.id] = download
        return download

    def eventsNamed(self, event: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.emitted if name == event]

    # ----- HostApi -----

    @property
    def state(self) -> HostState:
        return self._state

    def dispatch(self, actions) -> None:
        actions = list(actions)
        self.dispatched.append(actions)
        applyActions(self._state, actions)

    def emit(self, event: str, *args: Any) -> None:
        self.emitted.append((event, args))

    def sendNotification(self, notification: Notification) -> str:
        self.sent.append(notification)
        if notification.id is not None:
            self.notifications[notification.id] = notification
        return notification.id or ""

    def dismissNotification(self, notificationId: str) -> None:
        self.dismissed.append(notificationId)
        self.notifications.pop(notificationId, None)

    def showErrorNotification(self, message: str, err) -> None:
        self.errors.append((message, err))

    async def showDialog(self, type, title, content, actions) -> DialogResult:
        self.dialogs.append((title, content, list(actions)))
        if self.dialogGate is not None:
            await self.dialogGate.wait()
        if self.dialogAnswers:
            return self.dialogAnswers.pop(0)
        return DialogResult(list(actions)[-1])

    async def getInstalledGameVersion(self, gameId: str) -> str | None:
        return self.gameVersion

    def installPathForGame(self, gameId: str) -> Path:
        return self.installRoot / gameId

    async def applyPatches(self, bundlePath, gameId, sourceName, packageId, patches) -> None:
        self.patches.append((bundlePath, gameId, sourceName, packageId, patches))

    async def postprocessBundle(self, gameId: str, bundle: Package) -> None:
        self.postprocessed.append(bundle.id)

    async def startInstallDownload(self, downloadId: str) -> str:
        self.installedDownloads.append(downloadId)
        if self.onInstallDownload is None:
            raise RuntimeError("no install handler configured")
        return self.onInstallDownload(downloadId)

    async def removePackages(self, gameId: str, packageIds) -> None:
        packageIds = list(packageIds)
        self.removed.append((gameId, packageIds))
        for packageId in packageIds:
            self._state.packages.get(gameId, {}).pop(packageId, None)

    async def startDownload(self, urls, modInfo, fileName: str) -> str:
        self.downloadsStarted.append((list(urls), modInfo, fileName))
        if self.downloadError is not None:
            raise self.downloadError
        return "dl-new"

    async def generateBundleInfo(self, gameId: str, bundle: Package, onError) -> dict[str, Any]:
        for message, replace in self.bundleInfoErrors:
            onError(message, replace)
        return self.bundleInfo

    async def submitBundle(self, info: dict[str, Any], bundle: Package) -> dict[str, Any]:
        self.submitted.append(info)
        if self.submitError is not None:
            raise self.submitError
        return {"collectionId": 1234}


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def host(tmp_path: Path, catalog: FakeCatalog) -> FakeHost:
    return FakeHost(tmp_path, catalog)
