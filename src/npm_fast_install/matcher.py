"""Default version matcher backed by node-semver (npm range semantics)."""

from collections.abc import Sequence

import nodesemver


class NodeSemverMatcher:
    """VersionMatcherProtocol implementation using the `node-semver` package."""

    def __init__(self, loose: bool = False):
        self.loose = loose

    def max_satisfying(self, versions: Sequence[str], range_: str) -> str | None:
        try:
            return nodesemver.max_satisfying(list(versions), range_, loose=self.loose)
        except (ValueError, TypeError):
            # Unparseable range
            return None

    def is_exact_version(self, spec: str) -> bool:
        try:
            return nodesemver.parse(spec.strip(), loose=self.loose) is not None
        except (ValueError, TypeError):
            return False
