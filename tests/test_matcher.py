"""Tests for the node-semver backed version matcher."""

from npm_fast_install import NodeSemverMatcher
from npm_fast_install import VersionMatcherProtocol


def test_implements_protocol():
    assert isinstance(NodeSemverMatcher(), VersionMatcherProtocol)


def test_caret_range_capped_at_latest():
    matcher = NodeSemverMatcher()

    assert matcher.max_satisfying(["3.9.0", "3.10.0", "3.10.1"], "^3.0.0 <=3.10.1") == "3.10.1"


def test_cap_excludes_versions_newer_than_latest():
    """Versions above the registry's latest tag are never picked."""
    matcher = NodeSemverMatcher()

    assert matcher.max_satisfying(["1.0.0", "1.5.0", "1.9.0"], "^1.0.0 <=1.5.0") == "1.5.0"


def test_no_match_returns_none():
    matcher = NodeSemverMatcher()

    assert matcher.max_satisfying(["1.0.0", "2.0.0"], ">=9.0.0 <=2.0.0") is None


def test_is_exact_version():
    matcher = NodeSemverMatcher()

    assert matcher.is_exact_version("1.2.3")
    assert not matcher.is_exact_version("^1.2.3")
    assert not matcher.is_exact_version("latest")
