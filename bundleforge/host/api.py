# bundleforge/host/api.py
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Protocol

from bundleforge.bundles.types import DownloadModInfo, Package
from bundleforge.catalog.client import CatalogApi
from bundleforge.host.state import Action, HostState
from bundleforge.ui.notifications import Notification

__all__ = [
    "EVENT_INSTALL_DEPENDENCIES",
    "EVENT_VIEW_COLLECTION",
    "DialogType",
    "DialogCheckbox",
    "DialogContent",
    "DialogResult",
    "HostApi",
]

# Outbound signals
EVENT_INSTALL_DEPENDENCIES = "install-dependencies"     # (profileId, gameId, [bundleId], isOptionalPass)
EVENT_VIEW_COLLECTION = "view-collection"               # (bundleId)

DialogType = Literal["question", "info", "error"]



@dataclass(slots=True)
class DialogCheckbox:
    id: str
    text: str
    value: bool = False



@dataclass(slots=True)
class DialogContent:
    text: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    checkboxes: list[DialogCheckbox] = field(default_factory=list)
    message: str | None = None



@dataclass(slots=True)
class DialogResult:
    action: str
    input: dict[str, Any] = field(default_factory=dict)



class HostApi(Protocol):
    """
    Everything the orchestrator consumes from the surrounding application:
    store access, notifications, dialogs, outbound signals and the download,
    install and catalog collaborators.
    """
    catalog: CatalogApi

    @property
    def state(self) -> HostState: ...

    # ----- Store -----

    def dispatch(self, actions: Sequence[Action]) -> None:
        """Applies a batch of actions as one store update."""

    # ----- Signals -----

    def emit(self, event: str, *args: Any) -> None:
        """Fire-and-forget outbound signal."""

    # ----- UI -----

    def sendNotification(self, notification: Notification) -> str: ...

    def dismissNotification(self, notificationId: str) -> None: ...

    def showErrorNotification(self, message: str, err: BaseException | str) -> None: ...

    async def showDialog(
        self,
        type: DialogType,
        title: str,
        content: DialogContent,
        actions: Sequence[str],
    ) -> DialogResult: ...

    # ----- Game / install subsystem -----

    async def getInstalledGameVersion(self, gameId: str) -> str | None: ...

    def installPathForGame(self, gameId: str) -> Path: ...

    async def applyPatches(
        self,
        bundlePath: Path,
        gameId: str,
        sourceName: str,
        packageId: str,
        patches: dict[str, str],
    ) -> None: ...

    async def postprocessBundle(self, gameId: str, bundle: Package) -> None:
        """Applies the bundle's own package rules after its dependencies were installed."""

    async def startInstallDownload(self, downloadId: str) -> str:
        """Installs a finished download, returns the new package id."""

    async def removePackages(self, gameId: str, packageIds: Sequence[str]) -> None:
        """Removes several packages in one operation."""

    # ----- Download subsystem -----

    async def startDownload(self, urls: Sequence[str], modInfo: DownloadModInfo, fileName: str) -> str:
        """Returns the download id. Raises AlreadyDownloadedError when the archive exists."""

    # ----- Export -----

    async def generateBundleInfo(self, gameId: str, bundle: Package, onError) -> dict[str, Any]: ...

    async def submitBundle(self, info: dict[str, Any], bundle: Package) -> dict[str, Any]:
        """Uploads bundle info and archive. Returns the server response ({"collectionId": ...})."""
