# tests/bundleforge/bundles/test_matcher.py
from __future__ import annotations

from bundleforge.bundles.matcher import (
    findDownloadsByReference,
    findPackageByReference,
    matchesReference,
    matchRepo,
)
from bundleforge.bundles.types import (
    Download,
    DownloadModInfo,
    Package,
    PackageAttributes,
    PackageReference,
    RepoReference,
    RevisionModFileInfo,
    SourceIds,
)


def _package(packageId: str = "pkg-1", **attrs) -> Package:
    return Package(id=packageId, attributes=PackageAttributes(**attrs))


def test_exact_id_matches():
    assert matchesReference(PackageReference(id="pkg-1"), _package("pkg-1"))
    assert not matchesReference(PackageReference(id="pkg-2"), _package("pkg-1"))


def test_md5_matches_case_insensitive():
    ref = PackageReference(fileMD5="ABCDEF0123")
    assert matchesReference(ref, _package(fileMD5="abcdef0123"))


def test_repo_pair_matches_across_int_and_str_ids():
    ref = PackageReference(repo=RepoReference(repository="nexus", modId=10, fileId="20"))
    assert matchesReference(ref, _package(modId="10", fileId=20))
    assert not matchesReference(ref, _package(modId=10, fileId=21))


def test_repo_pair_needs_both_ids():
    ref = PackageReference(repo=RepoReference(modId=10))
    assert not matchesReference(ref, _package(modId=10, fileId=20))


def test_logical_name_gated_by_version_match():
    ref = PackageReference(logicalFileName="SkyUI", versionMatch="^5.0.0")
    assert matchesReference(ref, _package(logicalFileName="SkyUI", version="5.2.0"))
    assert not matchesReference(ref, _package(logicalFileName="SkyUI", version="4.1.0"))
    # No recorded version: the name alone decides
    assert matchesReference(ref, _package(logicalFileName="SkyUI"))


def test_file_expression_glob():
    ref = PackageReference(fileExpression="skyui_5*")
    assert matchesReference(ref, _package(fileName="C:\\Downloads\\SkyUI_5_2.7z"))
    assert not matchesReference(ref, _package(fileName="SkyUI_4_1.7z"))


def test_no_shared_discriminator_never_matches():
    ref = PackageReference(logicalFileName="SkyUI")
    assert not matchesReference(ref, _package(modId=1, fileId=2))
    assert not matchesReference(PackageReference(), _package())


def test_missing_side_never_matches():
    assert not matchesReference(PackageReference(id="pkg-1"), None)
    assert not matchesReference(None, _package())


def test_match_repo():
    ref = PackageReference(repo=RepoReference(modId=10, fileId=20))
    assert matchRepo(ref, RevisionModFileInfo(modId=10, fileId=20))
    assert not matchRepo(ref, RevisionModFileInfo(modId=10, fileId=21))
    assert not matchRepo(ref, None)


def test_find_package_prefers_exact_id():
    packages = {
        "by-name": _package("by-name", logicalFileName="Alpha"),
        "exact": _package("exact", logicalFileName="Other"),
    }
    ref = PackageReference(id="exact", logicalFileName="Alpha")
    assert findPackageByReference(ref, packages).id == "exact"
    assert findPackageByReference(PackageReference(logicalFileName="Alpha"), packages.values()).id == "by-name"
    assert findPackageByReference(PackageReference(logicalFileName="Beta"), packages) is None


def test_find_downloads_never_by_package_id():
    downloads = {
        "dl-1": Download(id="dl-1", fileMD5="aa", modInfo=DownloadModInfo(ids=SourceIds(modId=1, fileId=2))),
        "dl-2": Download(id="dl-2", fileMD5="bb"),
    }
    assert [dl.id for dl in findDownloadsByReference(PackageReference(repo=RepoReference(modId=1, fileId=2)), downloads)] == ["dl-1"]
    assert findDownloadsByReference(PackageReference(id="dl-2"), downloads) == []
