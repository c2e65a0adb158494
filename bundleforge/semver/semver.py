# bundleforge/semver/semver.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Literal

__all__ = [
    "Version",
    "Comparator",
    "Requirement",
    "parseVersion",
    "coerceVersion",
    "parseRequirement",
    "versionSatisfies",
    "versionMatches",
]



SEMVER_PATTERN_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_COERCE_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")



@total_ordering
@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{'.'.join(self.prerelease)}" if self.prerelease else base

    def _cmpKey(self) -> tuple:
        # Release sorts above any prerelease; numeric identifiers sort below alphanumeric
        releaseFlag = 1 if not self.prerelease else 0
        pre = tuple((0, int(ident)) if ident.isdigit() else (1, ident) for ident in self.prerelease)
        return (self.major, self.minor, self.patch, releaseFlag, pre)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmpKey() < other._cmpKey()



def parseVersion(raw: str) -> Version:
    """
    Parse a version string. Missing minor/patch components default to 0 and a
    leading "v" is accepted ("v1.2" -> 1.2.0). Build metadata is dropped.

    Raises ValueError for anything that is not semver-shaped ("1.2.3.4", "beta").
    """
    if not isinstance(raw, str):
        raise TypeError(f"Version must be a string, got {type(raw).__name__}")
    raw = raw.strip()
    if raw[:1] in ("v", "V") and raw[1:2].isdigit():
        raw = raw[1:]
    if not raw:
        raise ValueError("Version string cannot be empty")

    sepIndex = min([idx for idx in (raw.find("-"), raw.find("+")) if idx != -1], default=len(raw))
    core, suffix = raw[:sepIndex], raw[sepIndex:]
    parts = core.split(".")
    if not 1 <= len(parts) <= 3 or any(not re.fullmatch(r"0|[1-9]\d*", part) for part in parts):
        raise ValueError(f"Invalid version {raw!r}")
    while len(parts) < 3:
        parts.append("0")

    mtch = SEMVER_PATTERN_RE.match(".".join(parts) + suffix)
    if not mtch:
        raise ValueError(f"Invalid version {raw!r}")
    prerelease = tuple(mtch.group("prerelease").split(".")) if mtch.group("prerelease") else ()
    return Version(int(parts[0]), int(parts[1]), int(parts[2]), prerelease)



def coerceVersion(raw: str | None) -> Version | None:
    """
    Lenient parse for package versions found in the wild ("1.2.3.4", "2.0b").
    Uses the first numeric triple, or returns None when there is none.
    """
    if not raw:
        return None
    try:
        return parseVersion(raw)
    except (TypeError, ValueError):
        pass
    mtch = _COERCE_RE.search(str(raw))
    if mtch is None:
        return None
    return Version(*(int(group or 0) for group in mtch.groups()))



@dataclass(frozen=True)
class Comparator:
    operator: Literal["<", "<=", ">", ">=", "=="]
    version: Version



@dataclass(frozen=True)
class Requirement:
    # All comparators are AND-ed, alternatives ("||") are OR-ed
    alternatives: tuple[tuple[Comparator, ...], ...] = ()
    isAny: bool = False



def _caret(version: Version) -> tuple[Comparator, Comparator]:
    if version.major > 0:
        upper = Version(version.major + 1, 0, 0)
    elif version.minor > 0:
        upper = Version(0, version.minor + 1, 0)
    else:
        upper = Version(0, 0, version.patch + 1)
    return Comparator(">=", version), Comparator("<", upper)



def _tilde(version: Version) -> tuple[Comparator, Comparator]:
    if version.minor > 0 or version.patch > 0:
        upper = Version(version.major, version.minor + 1, 0)
    else:
        upper = Version(version.major + 1, 0, 0)
    return Comparator(">=", version), Comparator("<", upper)



def _parseRange(rawRange: str) -> tuple[Comparator, ...]:
    mtch = re.match(r"^(?P<left>\S+)\s+-\s+(?P<right>\S+)$", rawRange)
    if mtch:
        return (Comparator(">=", parseVersion(mtch.group("left"))),
                Comparator("<=", parseVersion(mtch.group("right"))))

    comparators: list[Comparator] = []
    for token in rawRange.split():
        if token[0] in ("^", "~"):
            version = parseVersion(token[1:])
            comparators.extend(_caret(version) if token[0] == "^" else _tilde(version))
            continue
        for op in ("<=", ">=", "==", "<", ">", "="):
            if token.startswith(op):
                comparators.append(Comparator("==" if op == "=" else op, parseVersion(token[len(op):])))
                break
        else:
            comparators.append(Comparator("==", parseVersion(token)))
    return tuple(comparators)



def parseRequirement(raw: str | None) -> Requirement:
    """
    Parse a version match expression.

        None, "", "*"          -> any version
        "1.2.3"                -> == 1.2.3
        ">=1.2.0 <2.0.0"       -> AND of comparators
        "^1.2.3", "~1.2.3"     -> npm style caret / tilde
        "1.2.3 - 2.0.0"        -> inclusive hyphen range
        ">=1 <2 || >=3"        -> alternatives

    A leading "+" (prefer newer) is accepted and ignored.
    """
    if raw is None:
        return Requirement(isAny=True)
    raw = raw.strip().lstrip("+").strip()
    if not raw or raw == "*":
        return Requirement(isAny=True)
    alternatives = tuple(_parseRange(part.strip()) for part in raw.split("||") if part.strip())
    return Requirement(alternatives=alternatives)



def _check(version: Version, comparator: Comparator) -> bool:
    other = comparator.version
    if comparator.operator == "==":
        return version == other
    if comparator.operator == ">=":
        return version >= other
    if comparator.operator == "<=":
        return version <= other
    if comparator.operator == ">":
        return version > other
    return version < other



def versionSatisfies(version: Version, requirement: Requirement) -> bool:
    if requirement.isAny:
        return True
    return any(all(_check(version, comp) for comp in alt) for alt in requirement.alternatives)



def versionMatches(rawVersion: str, expression: str) -> bool:
    """
    Total check of a package version against a match expression. Falls back to
    exact string equality when either side can't be parsed.
    """
    try:
        requirement = parseRequirement(expression)
    except (TypeError, ValueError):
        return rawVersion.strip() == expression.strip()
    if requirement.isAny:
        return True
    version = coerceVersion(rawVersion)
    if version is None:
        return rawVersion.strip() == expression.strip()
    return versionSatisfies(version, requirement)
