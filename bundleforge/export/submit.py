# bundleforge/export/submit.py
from __future__ import annotations

import logging
import re
from typing import Any

from bundleforge.core.errors import (
    ParameterInvalidError,
    ProcessCanceledError,
    RemoteFileNotFoundError,
    UserCanceledError,
)
from bundleforge.host.api import DialogContent, HostApi
from bundleforge.host.state import SetPackageAttribute
from bundleforge.ui.notifications import Notification

logger = logging.getLogger(__name__)

__all__ = ["filterInfo", "exportToApi"]

# Local-only data that never leaves the machine
_PRIVATE_ENTRY_KEYS = ("hashes", "choices", "details")

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")



def filterInfo(info: dict[str, Any]) -> dict[str, Any]:
    return {
        "info": info.get("info"),
        "mods": [
            {key: value for key, value in entry.items() if key not in _PRIVATE_ENTRY_KEYS}
            for entry in info.get("mods", [])
        ],
    }



def _render(message: str, replace: dict[str, Any] | None) -> str:
    if not replace:
        return message
    return _PLACEHOLDER.sub(lambda m: str(replace.get(m.group(1), m.group(0))), message)



def _findEntryName(info: dict[str, Any] | None, fileId: int | str) -> str | None:
    for entry in (info or {}).get("mods", []):
        source = entry.get("source") or {}
        if str(source.get("fileId")) == str(fileId):
            return entry.get("name")
    return None



async def exportToApi(host: HostApi, gameId: str, packageId: str) -> int | str | None:
    """
    Generates the bundle info, submits it and remembers the catalog id the
    server assigned. Returns that id.
    """
    bundle = host.state.package(gameId, packageId)
    if bundle is None:
        raise ValueError(f"Unknown package '{packageId}'")

    errors: list[str] = []

    def onError(message: str, replace: dict[str, Any] | None = None) -> None:
        errors.append(_render(message, replace))

    info: dict[str, Any] | None = None
    try:
        info = await host.generateBundleInfo(gameId, bundle, onError)
        if errors:
            choice = await host.showDialog(
                "error",
                "Errors creating collection",
                DialogContent(
                    text="There were errors creating the collection, do you want to proceed anyway?",
                    message="\n".join(errors),
                ),
                ["Cancel", "Continue"],
            )
            if choice.action == "Cancel":
                raise UserCanceledError()

        result = await host.submitBundle(filterInfo(info), bundle)
        collectionId = result.get("collectionId")
        host.dispatch([SetPackageAttribute(gameId, packageId, "collectionId", collectionId)])
        logger.info("Submitted bundle '%s' as collection %s", packageId, collectionId)
        return collectionId
    except RemoteFileNotFoundError as err:
        host.sendNotification(Notification(
            type="error",
            title="The server can't find one of the files in the collection, "
                  "are mod id and file id for it set correctly?",
            message=_findEntryName(info, err.fileId) or f"id: {err.fileId}",
        ))
        raise ProcessCanceledError("Mod file not found") from err
    except ParameterInvalidError as err:
        host.sendNotification(Notification(
            type="error",
            title="The server rejected this collection",
            message=str(err) or "<No reason given>",
        ))
        raise ProcessCanceledError("collection rejected") from err
