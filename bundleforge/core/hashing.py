# bundleforge/core/hashing.py
from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

__all__ = ["fileMD5", "fileMD5Async"]



def fileMD5(path: str | Path) -> str:
    """Returns the MD5 hex digest of the file content."""
    md5 = hashlib.md5()
    with Path(path).open("rb") as file:
        for chunk in iter(lambda: file.read(65536), b""):
            md5.update(chunk)
    return md5.hexdigest()



async def fileMD5Async(path: str | Path) -> str:
    # Hashing is blocking file I/O, keep it off the event loop
    return await asyncio.to_thread(fileMD5, path)
