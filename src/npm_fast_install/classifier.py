"""Dependency classification.

Decides how a raw package.json specifier has to be resolved before it can be
turned into a cache key. Pure functions, no I/O.
"""

import re

from .exceptions import MalformedGitSpecError
from .protocols import VersionMatcherProtocol
from .schema import Dependency
from .schema import DependencyKind
from .schema import ResolvedDependency

GIT_PREFIX = re.compile(r"^git\+")
GIT_FRAGMENT = re.compile(r"#(.*)$")

# Specs that always mean "whatever the registry calls latest"
LATEST_SPECS = frozenset({"*", "latest", ""})


def is_git_spec(raw_spec: str) -> bool:
    return GIT_PREFIX.match(raw_spec) is not None


def parse_git_version(raw_spec: str) -> str:
    """Extract the pinned version from a git spec's #fragment.

    Args:
        raw_spec: Git spec (e.g., "git+ssh://git@example.com/org/thing.git#1.2.3")

    Returns:
        The fragment (e.g., "1.2.3")

    Raises:
        MalformedGitSpecError: If there is no non-empty fragment
    """
    match = GIT_FRAGMENT.search(raw_spec)
    if match is None or not match.group(1):
        raise MalformedGitSpecError(
            "Git requirements MUST include a #1.2.3 style version. "
            f"eg: 'git+ssh://git@example.com/ORG/THING.git#1.2.3' (got '{raw_spec}')",
            context={"spec": raw_spec},
        )
    return match.group(1)


def classify(raw_spec: str, matcher: VersionMatcherProtocol) -> DependencyKind:
    """Classify a raw specifier.

    Git specs are checked first, so a malformed git spec fails here rather than
    being mistaken for a range.

    Raises:
        MalformedGitSpecError: Git spec without a #<version> fragment
    """
    if is_git_spec(raw_spec):
        parse_git_version(raw_spec)
        return DependencyKind.GIT_REF
    if raw_spec not in LATEST_SPECS and matcher.is_exact_version(raw_spec):
        return DependencyKind.EXACT_VERSION
    return DependencyKind.SEMVER_RANGE


def resolve_without_registry(dep: Dependency, matcher: VersionMatcherProtocol) -> ResolvedDependency | None:
    """Resolve a dependency whose version is already known from its spec.

    Returns:
        ResolvedDependency for exact and git specs, None for ranges (they need the registry)
    """
    kind = classify(dep.raw_spec, matcher)
    if kind is DependencyKind.GIT_REF:
        version = parse_git_version(dep.raw_spec)
    elif kind is DependencyKind.EXACT_VERSION:
        version = dep.raw_spec
    else:
        return None
    return ResolvedDependency(name=dep.name, raw_spec=dep.raw_spec, resolved_version=version, kind=kind)


def range_upper_bound(raw_spec: str, latest: str) -> str:
    """Range that also excludes anything newer than the registry's latest tag."""
    return f"{raw_spec} <={latest}"
