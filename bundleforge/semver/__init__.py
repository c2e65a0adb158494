from .semver import (
    Version,
    Requirement,
    parseVersion,
    coerceVersion,
    parseRequirement,
    versionSatisfies,
    versionMatches,
)

__all__ = [
    "Version",
    "Requirement",
    "parseVersion",
    "coerceVersion",
    "parseRequirement",
    "versionSatisfies",
    "versionMatches",
]
