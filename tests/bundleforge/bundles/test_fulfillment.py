# tests/bundleforge/bundles/test_fulfillment.py
from __future__ import annotations
import hashlib

import pytest

from bundleforge.bundles.fulfillment import installerChoicesMatch, isFulfilled, listPresentFiles
from bundleforge.bundles.types import (
    DependencyRule,
    FileManifestEntry,
    InstallerChoices,
    Package,
    PackageAttributes,
    PackageReference,
    RuleExtra,
    RuleType,
)


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _rule(files: dict[str, bytes] | None = None, choices=None) -> DependencyRule:
    fileList = tuple(FileManifestEntry(path=path, md5=_md5(data)) for path, data in files.items()) if files is not None else None
    return DependencyRule(
        type=RuleType.REQUIRES,
        reference=PackageReference(logicalFileName="A"),
        extra=RuleExtra(fileList=fileList, installerChoices=choices),
    )


def _package(choices=None) -> Package:
    return Package(id="pkg-a", installationPath="pkg-a", attributes=PackageAttributes(installerChoices=choices))


def _install(root, files: dict[str, bytes]) -> None:
    for rel, data in files.items():
        target = root / "pkg-a" / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


FILES = {"plugin.esp": b"plugin", "textures/a.dds": b"texture"}


@pytest.mark.asyncio
async def test_exact_manifest_is_fulfilled(tmp_path):
    _install(tmp_path, FILES)
    assert await isFulfilled(_rule(FILES), _package(), tmp_path)


@pytest.mark.asyncio
async def test_missing_file_is_not_fulfilled(tmp_path):
    _install(tmp_path, {"plugin.esp": b"plugin"})
    assert not await isFulfilled(_rule(FILES), _package(), tmp_path)


@pytest.mark.asyncio
async def test_extra_file_is_not_fulfilled(tmp_path):
    _install(tmp_path, {**FILES, "readme.txt": b"extra"})
    assert not await isFulfilled(_rule(FILES), _package(), tmp_path)


@pytest.mark.asyncio
async def test_changed_content_is_not_fulfilled(tmp_path):
    _install(tmp_path, {**FILES, "plugin.esp": b"edited"})
    assert not await isFulfilled(_rule(FILES), _package(), tmp_path)


@pytest.mark.asyncio
async def test_windows_manifest_paths_and_upper_case_hashes(tmp_path):
    _install(tmp_path, FILES)
    rule = DependencyRule(
        type=RuleType.REQUIRES,
        reference=PackageReference(logicalFileName="A"),
        extra=RuleExtra(fileList=(
            FileManifestEntry(path="plugin.esp", md5=_md5(b"plugin").upper()),
            FileManifestEntry(path="textures\\a.dds", md5=_md5(b"texture")),
        )),
    )
    assert await isFulfilled(rule, _package(), tmp_path)


@pytest.mark.asyncio
async def test_missing_install_directory(tmp_path):
    assert not await isFulfilled(_rule(FILES), _package(), tmp_path)


@pytest.mark.asyncio
async def test_no_candidate(tmp_path):
    assert not await isFulfilled(_rule(FILES), None, tmp_path)


@pytest.mark.asyncio
async def test_no_manifest_is_fulfilled_without_touching_disk(tmp_path):
    assert await isFulfilled(_rule(), _package(), tmp_path / "does-not-exist")
    # An empty manifest says nothing either
    assert await isFulfilled(_rule({}), _package(), tmp_path / "does-not-exist")


@pytest.mark.asyncio
async def test_installer_choices_must_match(tmp_path):
    wanted = InstallerChoices(type="fomod", options={"steps": [{"name": "Main", "choices": ["HD"]}]})
    recorded = InstallerChoices(type="fomod", options={"steps": ({"name": "Main", "choices": ("HD",)},)})
    other = InstallerChoices(type="fomod", options={"steps": [{"name": "Main", "choices": ["SD"]}]})

    assert await isFulfilled(_rule(choices=wanted), _package(recorded), tmp_path)
    assert not await isFulfilled(_rule(choices=wanted), _package(other), tmp_path)
    assert not await isFulfilled(_rule(choices=wanted), _package(None), tmp_path)


def test_installer_choices_not_declared():
    assert installerChoicesMatch(_rule(), _package(InstallerChoices(type="fomod", options={})))


@pytest.mark.asyncio
async def test_list_present_files(tmp_path):
    _install(tmp_path, FILES)
    present = await listPresentFiles(tmp_path / "pkg-a")
    assert present == {"plugin.esp": _md5(b"plugin"), "textures/a.dds": _md5(b"texture")}
