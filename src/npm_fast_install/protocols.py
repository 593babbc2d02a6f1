"""Protocols for the collaborators the installer drives.

The library never talks to a registry or parses version ranges itself. Apps can
provide any implementation; `NpmResolver` and `NodeSemverMatcher` are the
defaults used by the CLI.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol
from typing import runtime_checkable

from .schema import PackageInfo


@runtime_checkable
class PackageResolverProtocol(Protocol):
    """Registry lookup and package installation."""

    async def view(self, name: str) -> PackageInfo:
        """Fetch registry metadata for a package.

        Args:
            name: Package name (e.g., "lodash" or "@scope/pkg")

        Returns:
            PackageInfo with the registry's latest version and all published versions

        Raises:
            RegistryError: If the lookup fails
        """
        ...

    async def install(self, target_dir: Path, spec: str) -> None:
        """Install a package into target_dir.

        On success the package tree is at target_dir / "node_modules".

        Args:
            target_dir: Scratch directory to install into
            spec: Install spec ("name@1.2.3" or a raw git URL)

        Raises:
            FetchError: If the install fails
        """
        ...


@runtime_checkable
class VersionMatcherProtocol(Protocol):
    """Semver range matching."""

    def max_satisfying(self, versions: Sequence[str], range_: str) -> str | None:
        """Return the highest version in versions satisfying range_, or None."""
        ...

    def is_exact_version(self, spec: str) -> bool:
        """Return True if spec is a single concrete version, not a range."""
        ...
