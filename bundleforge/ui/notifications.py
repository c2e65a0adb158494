# bundleforge/ui/notifications.py
from __future__ import annotations
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

__all__ = [
    "NotificationType",
    "NotificationAction",
    "Notification",
    "INSTALLING_NOTIFICATION_ID",
    "installingNotificationId",
    "unfulfilledNotificationId",
    "normalizeType",
]

NotificationType = Literal["activity", "info", "success", "warning", "error"]

INSTALLING_NOTIFICATION_ID = "installing-collection-"



def installingNotificationId(bundleId: str) -> str:
    return INSTALLING_NOTIFICATION_ID + bundleId



def unfulfilledNotificationId(bundleId: str) -> str:
    return f"collection-incomplete-{bundleId}"



def normalizeType(kind: str) -> NotificationType:
    lvl = (kind or "").strip().lower()
    if lvl == "warn":
        lvl = "warning"
    return lvl if lvl in ("activity", "info", "success", "warning", "error") else "info" # Safe fallback



@dataclass(slots=True)
class NotificationAction:
    title: str
    action: Callable[[], None]



@dataclass(slots=True)
class Notification:
    """
    A notification for the host UI. Notifications with the same `id` replace
    each other, which is how progress updates are published.
    """
    type: NotificationType
    message: str
    id: str | None = None
    title: str | None = None
    progress: float | None = None
    displayMs: int | None = None
    actions: list[NotificationAction] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.type = normalizeType(self.type)
        if self.progress is not None:
            self.progress = max(0.0, min(100.0, float(self.progress)))
        if self.displayMs is not None:
            self.displayMs = max(100, min(int(self.displayMs), 60_000))
