# bundleforge/core/errors.py
from __future__ import annotations

__all__ = [
    "CanceledError",
    "UserCanceledError",
    "ProcessCanceledError",
    "AlreadyDownloadedError",
    "RemoteFileNotFoundError",
    "ParameterInvalidError",
    "CatalogError",
]



class CanceledError(Exception):
    """Base class for cancellations. Never reported to the user as an error."""



class UserCanceledError(CanceledError):
    """Raised when the user explicitly aborted an operation (dialog, prompt)."""

    def __init__(self, message: str = "Canceled by user") -> None:
        super().__init__(message)



class ProcessCanceledError(CanceledError):
    """
    Raised after a classified external failure has already been reported to the
    user, so callers treat it as a cancellation instead of a crash.
    """



class AlreadyDownloadedError(Exception):
    """Raised by the download subsystem when the archive exists locally."""

    def __init__(self, fileName: str, downloadId: str | None = None) -> None:
        super().__init__(f"File already downloaded: {fileName}")
        self.fileName = fileName
        self.downloadId = downloadId



class RemoteFileNotFoundError(Exception):
    """The catalog server can't find a file referenced by a bundle entry."""

    def __init__(self, fileId: int | str, message: str | None = None) -> None:
        super().__init__(message or f"File not found on server: {fileId}")
        self.fileId = fileId



class ParameterInvalidError(Exception):
    """The catalog server rejected the submitted parameters."""



class CatalogError(RuntimeError):
    """Remote catalog lookup failed (transport error or unexpected response)."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
