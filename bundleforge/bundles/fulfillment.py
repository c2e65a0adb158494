# bundleforge/bundles/fulfillment.py
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from bundleforge.bundles.types import DependencyRule, FileManifestEntry, Package
from bundleforge.core.hashing import fileMD5Async
from bundleforge.core.utils import deepEquals

logger = logging.getLogger(__name__)

__all__ = ["isFulfilled", "listPresentFiles", "installerChoicesMatch"]



def _normalizePath(path: str) -> str:
    # Manifests recorded on Windows use backslashes
    return path.replace("\\", "/").strip("/")



async def listPresentFiles(packagePath: Path) -> dict[str, str]:
    """
    Hashes every file below `packagePath`. Returns {relativePosixPath: md5}.
    """
    files = await asyncio.to_thread(lambda: sorted(path for path in packagePath.rglob("*") if path.is_file()))
    digests = await asyncio.gather(*(fileMD5Async(path) for path in files))
    return {path.relative_to(packagePath).as_posix(): digest for path, digest in zip(files, digests)}



def _manifestAsDict(fileList: tuple[FileManifestEntry, ...]) -> dict[str, str] | None:
    out: dict[str, str] = {}
    for entry in fileList:
        key = _normalizePath(entry.path)
        if key in out and out[key] != entry.md5.lower():
            # Same path listed twice with different content can never be satisfied
            return None
        out[key] = entry.md5.lower()
    return out



def installerChoicesMatch(rule: DependencyRule, candidate: Package) -> bool:
    if rule.extra.installerChoices is None:
        return True
    expected = rule.extra.installerChoices.options
    recorded = candidate.attributes.installerChoices.options if candidate.attributes.installerChoices is not None else None
    return deepEquals(expected, recorded)



async def isFulfilled(rule: DependencyRule, candidate: Package | None, installRoot: Path | str) -> bool:
    """
    Decides whether an installed package already satisfies a rule.

    - No candidate: not fulfilled.
    - Declared installer choices must equal the recorded ones.
    - A non-empty file manifest must equal the package's files exactly: same
      relative paths, same MD5s, nothing missing, nothing extra.
    """
    if candidate is None:
        return False

    if not installerChoicesMatch(rule, candidate):
        logger.debug("Installer choices differ for '%s'", candidate.id)
        return False

    if not rule.hasManifest:
        return True

    if candidate.installationPath is None:
        return False
    packagePath = Path(installRoot) / candidate.installationPath
    if not packagePath.is_dir():
        logger.debug("Install path of '%s' missing: %s", candidate.id, packagePath)
        return False

    expected = _manifestAsDict(rule.extra.fileList or ())
    if expected is None:
        return False

    try:
        present = await listPresentFiles(packagePath)
    except OSError as err:
        logger.warning("Failed to hash files of '%s': %s", candidate.id, err)
        return False

    present = {_normalizePath(path): digest.lower() for path, digest in present.items()}
    if present != expected:
        logger.debug(
            "File manifest mismatch for '%s' (missing=%d, extra=%d)",
            candidate.id,
            len(expected.keys() - present.keys()),
            len(present.keys() - expected.keys()),
        )
        return False
    return True
