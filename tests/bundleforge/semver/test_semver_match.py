# tests/bundleforge/semver/test_semver_match.py
import pytest

from bundleforge.semver import (
    Version,
    coerceVersion,
    parseRequirement,
    parseVersion,
    versionMatches,
    versionSatisfies,
)


def _matches(req_str: str | None, candidates: list[str]) -> list[str]:
    req = parseRequirement(req_str)
    vers = [parseVersion(vs) for vs in candidates]
    return [str(v) for v in vers if versionSatisfies(v, req)]


@pytest.mark.parametrize("raw, expected", [
    ("1.2.3", Version(1, 2, 3)),
    ("v1.2", Version(1, 2, 0)),
    ("2", Version(2, 0, 0)),
    ("1.0.0-beta.2+build.5", Version(1, 0, 0, ("beta", "2"))),
])
def test_parse_version(raw, expected):
    assert parseVersion(raw) == expected


@pytest.mark.parametrize("raw", ["", "beta", "1.2.3.4", "01.2.3"])
def test_parse_version_rejects(raw):
    with pytest.raises(ValueError):
        parseVersion(raw)


def test_prerelease_sorts_below_release():
    assert parseVersion("1.0.0-alpha") < parseVersion("1.0.0-alpha.1") < parseVersion("1.0.0-beta") < parseVersion("1.0.0")
    assert parseVersion("1.0.0-2") < parseVersion("1.0.0-10")


def test_coerce_version_lenient():
    assert coerceVersion("1.2.3.4") == Version(1, 2, 3)
    assert coerceVersion("2.0b") == Version(2, 0, 0)
    assert coerceVersion("release") is None
    assert coerceVersion(None) is None


@pytest.mark.parametrize("raw", [None, "", "   ", "*", "+*"])
def test_requirement_parse_any(raw):
    assert parseRequirement(raw).isAny


def test_requirement_basic_inequalities():
    assert _matches(">=1.2.0 <2.0.0", ["1.1.9", "1.2.0", "1.5.0", "2.0.0"]) == ["1.2.0", "1.5.0"]


def test_requirement_caret_semantics():
    assert _matches("^1.2.3", ["1.2.3", "1.4.0", "2.0.0", "0.9.0"]) == ["1.2.3", "1.4.0"]
    assert _matches("^0.2.3", ["0.2.3", "0.2.9", "0.3.0", "1.0.0"]) == ["0.2.3", "0.2.9"]
    assert _matches("^0.0.3", ["0.0.2", "0.0.3", "0.0.4"]) == ["0.0.3"]


def test_requirement_tilde_semantics():
    assert _matches("~1.2.3", ["1.2.3", "1.2.9", "1.3.0"]) == ["1.2.3", "1.2.9"]


def test_requirement_hyphen_and_alternatives():
    assert _matches("1.0.0 - 1.5.0", ["0.9.0", "1.0.0", "1.5.0", "1.5.1"]) == ["1.0.0", "1.5.0"]
    assert _matches("<1.0.0 || >=3.0.0", ["0.5.0", "2.0.0", "3.1.0"]) == ["0.5.0", "3.1.0"]


def test_prefer_newer_marker_is_ignored():
    assert _matches("+>=1.2.0", ["1.1.0", "1.2.0"]) == ["1.2.0"]


def test_version_matches_is_total():
    assert versionMatches("1.4.0", "^1.2.0")
    assert not versionMatches("2.0.0", "^1.2.0")
    assert versionMatches("1.2.3.4", ">=1.2.0")
    # Unparseable on either side falls back to exact text
    assert versionMatches("nightly", "nightly")
    assert not versionMatches("nightly", "1.0.0")
    assert versionMatches("1.0", "weird-tag") is False
    assert versionMatches("anything", "*")
