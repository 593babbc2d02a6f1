"""npm-fast-install - Cache-aware concurrent npm dependency installation.

Installed packages are cached under (name, version, arch, module ABI version);
later installs copy them from the cache instead of going back to npm.
"""

from .cache import CacheKey
from .cache import CacheStore
from .cache import build_cache_key
from .classifier import classify
from .classifier import parse_git_version
from .config import InstallOptions
from .config import resolve_path
from .exceptions import CacheWriteError
from .exceptions import CopyError
from .exceptions import FastInstallError
from .exceptions import FetchError
from .exceptions import InvalidDirectoryError
from .exceptions import MalformedGitSpecError
from .exceptions import ManifestError
from .exceptions import ManifestMissingError
from .exceptions import OperationTimeoutError
from .exceptions import RegistryError
from .installer import Installer
from .installer import install
from .matcher import NodeSemverMatcher
from .merge import merge_into
from .npm import NpmResolver
from .npm import detect_runtime
from .protocols import PackageResolverProtocol
from .protocols import VersionMatcherProtocol
from .schema import Dependency
from .schema import DependencyKind
from .schema import HostRuntime
from .schema import InstalledModule
from .schema import InstallResult
from .schema import PackageInfo
from .schema import PackageManifest
from .schema import ResolvedDependency

__all__ = [
    # Data model
    "Dependency",
    "DependencyKind",
    "ResolvedDependency",
    "PackageInfo",
    "PackageManifest",
    "HostRuntime",
    "InstalledModule",
    "InstallResult",
    # Configuration
    "InstallOptions",
    "resolve_path",
    # Installation
    "install",
    "Installer",
    "classify",
    "parse_git_version",
    # Cache
    "CacheKey",
    "CacheStore",
    "build_cache_key",
    "merge_into",
    # Collaborators
    "PackageResolverProtocol",
    "VersionMatcherProtocol",
    "NpmResolver",
    "NodeSemverMatcher",
    "detect_runtime",
    # Exceptions
    "FastInstallError",
    "InvalidDirectoryError",
    "ManifestMissingError",
    "ManifestError",
    "MalformedGitSpecError",
    "RegistryError",
    "FetchError",
    "CacheWriteError",
    "CopyError",
    "OperationTimeoutError",
]

__version__ = "0.1.0"
