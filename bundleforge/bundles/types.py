# bundleforge/bundles/types.py
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "BUNDLE_TYPE",
    "RuleType",
    "PackageState",
    "RepoReference",
    "PackageReference",
    "FileManifestEntry",
    "InstallerChoices",
    "RuleExtra",
    "DependencyRule",
    "PackageAttributes",
    "Package",
    "Profile",
    "SourceIds",
    "CollectionUser",
    "CollectionInfo",
    "GameVersion",
    "RevisionModFileInfo",
    "RevisionModFile",
    "RevisionInfo",
    "DownloadModInfo",
    "Download",
    "DownloadUrl",
    "MatchFields",
]



# Package type tag the install subsystem gives to bundle packages
BUNDLE_TYPE = "collection"



class RuleType(str, Enum):
    REQUIRES = "requires"
    RECOMMENDS = "recommends"
    # Load order and conflict rules ("before", "after", "conflicts", ...) all land here
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> "RuleType":
        return cls.OTHER



class PackageState(str, Enum):
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    INSTALLING = "installing"
    INSTALLED = "installed"



class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)



class _FrozenModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)



# ----- Rules and references -----

class RepoReference(_FrozenModel):
    repository: str | None = None                   # e.g. "nexus"
    gameId: str | None = None
    modId: int | str | None = None
    fileId: int | str | None = None



class PackageReference(_FrozenModel):
    id: str | None = None                           # Exact installed package id
    fileMD5: str | None = Field(default=None, alias="fileMD5")
    fileSize: int | None = None                     # Declared archive size in bytes
    repo: RepoReference | None = None
    logicalFileName: str | None = None
    fileExpression: str | None = None               # Glob over the archive file name
    versionMatch: str | None = None                 # Semver-ish expression, gates name matches
    description: str | None = None                  # Display name of the referenced file



class FileManifestEntry(_FrozenModel):
    path: str                                       # Relative to the package install root
    md5: str



class InstallerChoices(_FrozenModel):
    type: str | None = None                         # e.g. "fomod"
    options: Any = None



class RuleExtra(_FrozenModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow")

    fileList: tuple[FileManifestEntry, ...] | None = None
    instructions: str | None = None
    installerChoices: InstallerChoices | None = None
    patches: dict[str, str] | None = None           # Relative file path -> patch id
    fileName: str | None = None                     # Filled in from revision metadata
    name: str | None = None



class DependencyRule(_FrozenModel):
    type: RuleType
    reference: PackageReference
    extra: RuleExtra = Field(default_factory=RuleExtra)
    ignored: bool = False

    @property
    def hasManifest(self) -> bool:
        return bool(self.extra.fileList)

    @property
    def hasInstallerChoices(self) -> bool:
        return self.extra.installerChoices is not None



# ----- Installed packages -----

class PackageAttributes(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str | None = None
    version: str | None = None
    fileMD5: str | None = Field(default=None, alias="fileMD5")
    fileSize: int | None = None
    fileName: str | None = None
    logicalFileName: str | None = None
    modId: int | str | None = None
    fileId: int | str | None = None
    source: str | None = None
    installedAsDependency: bool = False
    installerChoices: InstallerChoices | None = None
    collectionId: int | str | None = None



class MatchFields(BaseModel):
    """The discriminators a reference can be tested against."""
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    fileMD5: str | None = None
    modId: int | str | None = None
    fileId: int | str | None = None
    logicalFileName: str | None = None
    fileName: str | None = None
    version: str | None = None



class Package(_Model):
    id: str
    type: str = ""
    state: PackageState | None = None
    installationPath: str | None = None
    archiveId: str | None = None
    attributes: PackageAttributes = Field(default_factory=PackageAttributes)
    rules: list[DependencyRule] = Field(default_factory=list)

    @property
    def isBundle(self) -> bool:
        return self.type == BUNDLE_TYPE

    @property
    def displayName(self) -> str:
        return self.attributes.name or self.attributes.logicalFileName or self.id

    def matchFields(self) -> MatchFields:
        attrs = self.attributes
        return MatchFields(
            id=self.id,
            fileMD5=attrs.fileMD5,
            modId=attrs.modId,
            fileId=attrs.fileId,
            logicalFileName=attrs.logicalFileName,
            fileName=attrs.fileName,
            version=attrs.version,
        )



class Profile(_Model):
    id: str
    gameId: str
    name: str = ""



# ----- Remote catalog metadata -----

class SourceIds(_Model):
    gameId: str | None = None
    collectionId: int | str | None = None
    collectionSlug: str | None = None
    revisionId: int | str | None = None
    revisionNumber: int | None = None
    modId: int | str | None = None
    fileId: int | str | None = None



class CollectionUser(_Model):
    memberId: int | str | None = None
    name: str | None = None



class CollectionInfo(_Model):
    id: int | str | None = None
    slug: str | None = None
    name: str | None = None
    summary: str | None = None
    user: CollectionUser | None = None



class GameVersion(_Model):
    reference: str



class RevisionModFileInfo(_Model):
    modId: int | str | None = None
    fileId: int | str | None = None
    uri: str | None = None
    name: str | None = None
    size: int | None = None



class RevisionModFile(_Model):
    fileId: int | str | None = None
    optional: bool = False
    file: RevisionModFileInfo | None = None



class RevisionInfo(_Model):
    id: int | str | None = None
    revision: int | None = None
    collection: CollectionInfo | None = None
    gameVersions: list[GameVersion] = Field(default_factory=list)
    modFiles: list[RevisionModFile] = Field(default_factory=list)
    downloadLink: str | None = None
    rating: dict[str, Any] | None = None



# ----- Downloads -----

class DownloadModInfo(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    game: str | None = None
    source: str | None = None
    name: str | None = None
    logicalFileName: str | None = None
    version: str | None = None
    ids: SourceIds = Field(default_factory=SourceIds)
    revisionInfo: RevisionInfo | None = None        # Embedded copy, used when the catalog is unreachable
    collectionInfo: CollectionInfo | None = None



class Download(_Model):
    id: str
    state: str | None = None                        # "started", "paused", "finished", "failed", ...
    received: int = 0
    size: int = 0
    localPath: str | None = None
    fileMD5: str | None = Field(default=None, alias="fileMD5")
    game: list[str] = Field(default_factory=list)
    modInfo: DownloadModInfo = Field(default_factory=DownloadModInfo)

    def matchFields(self) -> MatchFields:
        # Downloads have their own id space, so package ids never match them
        return MatchFields(
            fileMD5=self.fileMD5,
            modId=self.modInfo.ids.modId,
            fileId=self.modInfo.ids.fileId,
            logicalFileName=self.modInfo.logicalFileName,
            fileName=self.localPath,
            version=self.modInfo.version,
        )



class DownloadUrl(_Model):
    URI: str = Field(alias="URI")
    name: str | None = None
    shortName: str | None = None
