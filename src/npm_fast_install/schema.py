"""Data model - manifests, dependencies and install results.

package.json is parsed with the standard library json module; everything the
installer passes around is an immutable pydantic model.
"""

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from .exceptions import ManifestError
from .exceptions import ManifestMissingError


class DependencyKind(str, Enum):
    """How a raw version specifier must be resolved."""

    EXACT_VERSION = "exact"
    SEMVER_RANGE = "range"
    GIT_REF = "git"


class Dependency(BaseModel):
    """A dependency as declared in package.json."""

    model_config = ConfigDict(frozen=True)

    name: str
    raw_spec: str


class PackageInfo(BaseModel):
    """Registry metadata for one package."""

    model_config = ConfigDict(frozen=True)

    version: str
    versions: list[str] = Field(default_factory=list)


class ResolvedDependency(Dependency):
    """A dependency whose version is concrete enough to build a cache key."""

    resolved_version: str
    kind: DependencyKind
    info: PackageInfo | None = None

    @property
    def install_spec(self) -> str:
        """Spec handed to the package installer on a cache miss."""
        if self.kind is DependencyKind.GIT_REF:
            return self.raw_spec
        return f"{self.name}@{self.resolved_version}"


class HostRuntime(BaseModel):
    """Facts about the host Node.js runtime, read once per run."""

    model_config = ConfigDict(frozen=True)

    node_version: str
    arch: str
    abi_version: str


class InstalledModule(BaseModel):
    """One module placed in the destination node_modules."""

    model_config = ConfigDict(frozen=True)

    version: str
    path: Path
    from_cache: bool = False
    info: PackageInfo | None = None


class InstallResult(BaseModel):
    """Result of a successful install run."""

    model_config = ConfigDict(frozen=True)

    node_version: str
    arch: str
    abi_version: str
    modules: dict[str, InstalledModule] = Field(default_factory=dict)


def _dependency_section(data: dict, key: str) -> list[Dependency]:
    section = data.get(key)
    if not isinstance(section, dict):
        return []
    return [Dependency(name=name, raw_spec=spec) for name, spec in section.items() if isinstance(spec, str)]


class PackageManifest(BaseModel):
    """
    Declared dependencies from a package.json.

    Only the three sections the installer cares about are kept, in declaration order.
    """

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    version: str | None = None
    dependencies: list[Dependency] = Field(default_factory=list)
    optional_dependencies: list[Dependency] = Field(default_factory=list)
    dev_dependencies: list[Dependency] = Field(default_factory=list)

    @classmethod
    def from_package_json(cls, path: Path) -> "PackageManifest":
        """
        Load a manifest from package.json.

        Args:
            path: Path to package.json

        Returns:
            PackageManifest instance

        Raises:
            ManifestMissingError: If the file doesn't exist
            ManifestError: If the file isn't a JSON object
        """
        if not path.exists():
            raise ManifestMissingError("No package.json found", context={"path": str(path)})

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ManifestError(f"Failed to read {path}: {e}", context={"path": str(path)}) from e

        if not isinstance(data, dict):
            raise ManifestError(f"{path} does not contain a JSON object", context={"path": str(path)})

        name = data.get("name")
        version = data.get("version")
        return cls(
            name=name if isinstance(name, str) else None,
            version=version if isinstance(version, str) else None,
            dependencies=_dependency_section(data, "dependencies"),
            optional_dependencies=_dependency_section(data, "optionalDependencies"),
            dev_dependencies=_dependency_section(data, "devDependencies"),
        )

    def all_dependencies(self, production: bool = False) -> list[Dependency]:
        """Dependencies to install.

        Args:
            production: When True, only `dependencies`; otherwise optional and dev ones follow

        Returns:
            Ordered list of dependencies
        """
        deps = list(self.dependencies)
        if not production:
            deps += self.optional_dependencies
            deps += self.dev_dependencies
        return deps
