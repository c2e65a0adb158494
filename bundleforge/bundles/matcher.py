# bundleforge/bundles/matcher.py
from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable, Mapping
from pathlib import PurePath

from bundleforge.bundles.types import (
    Download,
    MatchFields,
    Package,
    PackageReference,
    RevisionModFileInfo,
)
from bundleforge.semver import versionMatches

logger = logging.getLogger(__name__)

__all__ = [
    "matchesReference",
    "matchRepo",
    "findPackageByReference",
    "findDownloadsByReference",
]



def _present(value: object) -> bool:
    return value is not None and value != ""



def _sameId(first: object, second: object) -> bool:
    # Catalog ids arrive as ints from one side and strings from the other
    return str(first) == str(second)



def _repoAgrees(reference: PackageReference, fields: MatchFields) -> bool | None:
    repo = reference.repo
    if repo is None or not _present(repo.modId) or not _present(repo.fileId):
        return None
    if not _present(fields.modId) or not _present(fields.fileId):
        return None
    return _sameId(repo.modId, fields.modId) and _sameId(repo.fileId, fields.fileId)



def _nameAgrees(reference: PackageReference, fields: MatchFields) -> bool | None:
    if not _present(reference.logicalFileName) or not _present(fields.logicalFileName):
        return None
    if reference.logicalFileName != fields.logicalFileName:
        return False
    if _present(reference.versionMatch) and _present(fields.version):
        return versionMatches(fields.version, reference.versionMatch)
    return True



def _expressionAgrees(reference: PackageReference, fields: MatchFields) -> bool | None:
    if not _present(reference.fileExpression) or not _present(fields.fileName):
        return None
    baseName = PurePath(fields.fileName.replace("\\", "/")).name
    pattern = reference.fileExpression.lower()
    if not fnmatch.fnmatchcase(baseName.lower(), pattern) and not fnmatch.fnmatchcase(PurePath(baseName).stem.lower(), pattern):
        return False
    if _present(reference.versionMatch) and _present(fields.version):
        return versionMatches(fields.version, reference.versionMatch)
    return True



def matchesReference(reference: PackageReference | None, candidate: Package | Download | MatchFields | None) -> bool:
    """
    True when any discriminator present on both the reference and the candidate
    agrees: explicit id, content hash, catalog repo pair, logical name (gated by
    versionMatch) or file expression. Discriminators missing on either side are
    skipped. Never raises.
    """
    if reference is None or candidate is None:
        return False
    try:
        fields = candidate if isinstance(candidate, MatchFields) else candidate.matchFields()

        if _present(reference.id) and _present(fields.id) and reference.id == fields.id:
            return True
        if _present(reference.fileMD5) and _present(fields.fileMD5) \
                and reference.fileMD5.lower() == fields.fileMD5.lower():
            return True
        for check in (_repoAgrees, _nameAgrees, _expressionAgrees):
            if check(reference, fields):
                return True
        return False
    except Exception:
        logger.exception("Reference test failed for %r", reference)
        return False



def matchRepo(reference: PackageReference, modFile: RevisionModFileInfo | None) -> bool:
    """True if the reference's catalog repo pair names this revision mod file."""
    if modFile is None:
        return False
    return _repoAgrees(reference, MatchFields(modId=modFile.modId, fileId=modFile.fileId)) is True



def findPackageByReference(reference: PackageReference, packages: Mapping[str, Package] | Iterable[Package]) -> Package | None:
    """
    Returns the installed package a reference points at. An exact id hit wins
    over any other discriminator, so one reference resolves to at most one package.
    """
    candidates = list(packages.values()) if isinstance(packages, Mapping) else list(packages)
    if _present(reference.id):
        for package in candidates:
            if package.id == reference.id:
                return package
    for package in candidates:
        if matchesReference(reference, package):
            return package
    return None



def findDownloadsByReference(reference: PackageReference, downloads: Mapping[str, Download] | Iterable[Download]) -> list[Download]:
    candidates = downloads.values() if isinstance(downloads, Mapping) else downloads
    return [download for download in candidates if matchesReference(reference, download)]
