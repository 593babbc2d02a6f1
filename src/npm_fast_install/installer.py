"""Cache-aware install orchestration.

For every declared dependency:

    Pending -> Classified -+> FastCacheHit -> Merged
                          +-> Resolving -> Resolved -+> CacheHit -> Merged
                                                     +-> Fetching -> Fetched -> Committed -> Merged

Any state can end in Failed. Exact and git-pinned specs skip the registry
entirely when their key is already cached. Both cache hits and fresh installs
are merged from the cache entry, so the cache and node_modules always come
from the same source.

Dependencies run concurrently, at most `max_tasks` at a time. Nothing is
locked: cache commits are idempotent and merges copy entry by entry.
"""

import asyncio
import logging
import shutil
import tempfile
from collections.abc import AsyncIterator
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import TypeVar

from .cache import CacheKey
from .cache import CacheStore
from .cache import build_cache_key
from .classifier import LATEST_SPECS
from .classifier import range_upper_bound
from .classifier import resolve_without_registry
from .config import InstallOptions
from .exceptions import FastInstallError
from .exceptions import FetchError
from .exceptions import InvalidDirectoryError
from .exceptions import OperationTimeoutError
from .matcher import NodeSemverMatcher
from .npm import NpmResolver
from .npm import detect_runtime
from .protocols import PackageResolverProtocol
from .protocols import VersionMatcherProtocol
from .schema import Dependency
from .schema import DependencyKind
from .schema import HostRuntime
from .schema import InstalledModule
from .schema import InstallResult
from .schema import PackageManifest
from .schema import ResolvedDependency

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "npm-fast-install-"

T = TypeVar("T")


class InstallState(str, Enum):
    PENDING = "pending"
    CLASSIFIED = "classified"
    FAST_CACHE_HIT = "fast-cache-hit"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    CACHE_HIT = "cache-hit"
    FETCHING = "fetching"
    FETCHED = "fetched"
    COMMITTED = "committed"
    MERGED = "merged"
    FAILED = "failed"


@asynccontextmanager
async def scratch_area(prefix: str = SCRATCH_PREFIX) -> AsyncIterator[Path]:
    """Exclusively owned temp directory, removed on exit whatever happens."""
    path = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix=prefix))
    try:
        yield path
    finally:
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)


def _pluralize(word: str, plural: str, count: int) -> str:
    return word if count == 1 else plural


class Installer:
    """
    Installs dependencies into one node_modules through a package cache.

    Collaborators are injected; see `install()` for the defaults.
    """

    def __init__(
        self,
        cache: CacheStore,
        node_modules: Path,
        runtime: HostRuntime,
        resolver: PackageResolverProtocol,
        matcher: VersionMatcherProtocol,
        max_tasks: int = 1,
        timeout: float | None = None,
        log: logging.Logger | None = None,
    ):
        """Initialize installer.

        Args:
            cache: Cache store
            node_modules: Destination node_modules directory
            runtime: Host runtime facts (arch and ABI version go into every cache key)
            resolver: Registry lookup and package installer
            matcher: Semver range matcher
            max_tasks: Maximum dependencies in flight at once
            timeout: Per resolver call timeout in seconds
            log: Logger for progress messages
        """
        self.cache = cache
        self.node_modules = node_modules
        self.runtime = runtime
        self.resolver = resolver
        self.matcher = matcher
        self.max_tasks = max_tasks
        self.timeout = timeout
        self.logger = log or logger

    async def run(self, dependencies: list[Dependency]) -> InstallResult:
        """
        Install all dependencies.

        Once any dependency fails, no further dependency is started, but those
        already running are left to finish (or fail) on their own; nothing is
        cancelled. The run then raises the first failure. Dependencies merged
        before the failure stay on disk; a re-run picks them up from the cache.

        Args:
            dependencies: Dependencies to install (duplicate names keep the first)

        Returns:
            InstallResult listing every installed module

        Raises:
            FastInstallError: The first dependency failure
        """
        unique: dict[str, Dependency] = {}
        for dep in dependencies:
            if dep.name in unique:
                self.logger.debug(f"Ignoring duplicate declaration {dep.name}@{dep.raw_spec}")
                continue
            unique[dep.name] = dep

        semaphore = asyncio.Semaphore(self.max_tasks)
        failures: list[BaseException] = []

        async def worker(dep: Dependency) -> tuple[str, InstalledModule] | None:
            async with semaphore:
                if failures:
                    self.logger.debug(f"Not starting {dep.name}: install already failed")
                    return None
                try:
                    return await self.install_dependency(dep)
                except Exception as e:
                    if isinstance(e, FastInstallError):
                        e.context.setdefault("dependency", dep.name)
                    self._transition(dep, InstallState.FAILED)
                    self.logger.error(f"Failed to install {dep.name}@{dep.raw_spec}: {e}")
                    failures.append(e)
                    raise

        outcomes = await asyncio.gather(*(worker(dep) for dep in unique.values()), return_exceptions=True)

        if failures:
            raise failures[0]

        modules: dict[str, InstalledModule] = {}
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is not None:
                name, module = outcome
                modules[name] = module

        return InstallResult(
            node_version=self.runtime.node_version,
            arch=self.runtime.arch,
            abi_version=self.runtime.abi_version,
            modules=modules,
        )

    async def install_dependency(self, dep: Dependency) -> tuple[str, InstalledModule]:
        """Take one dependency from Pending to Merged.

        Returns:
            (name, InstalledModule)

        Raises:
            FastInstallError: If any step fails
        """
        self._transition(dep, InstallState.PENDING)
        resolved = resolve_without_registry(dep, self.matcher)
        self._transition(dep, InstallState.CLASSIFIED)

        if resolved is not None:
            key = self._key(resolved)
            if self.cache.exists(key):
                self._transition(dep, InstallState.FAST_CACHE_HIT)
                return await self._merge(resolved, key, from_cache=True)
        else:
            self._transition(dep, InstallState.RESOLVING)
            resolved = await self.resolve_range(dep)

        self._transition(dep, InstallState.RESOLVED)
        key = self._key(resolved)

        # Range resolution may land on a key that's already cached, and another
        # worker may have committed this key meanwhile
        if self.cache.exists(key):
            self._transition(dep, InstallState.CACHE_HIT)
            return await self._merge(resolved, key, from_cache=True)

        await self._fetch_and_commit(resolved, key)
        return await self._merge(resolved, key, from_cache=False)

    async def resolve_range(self, dep: Dependency) -> ResolvedDependency:
        """
        Resolve a semver range against the registry.

        "*" and "latest" take the registry's latest version. Any other range
        takes the highest published version satisfying it that isn't newer than
        latest. If nothing matches, the raw spec itself becomes the version so
        the install still goes ahead and npm gets the final word.

        Raises:
            RegistryError: If the registry lookup fails
            OperationTimeoutError: If the lookup times out
        """
        info = await self._call(self.resolver.view(dep.name), dep, "Registry lookup")

        if dep.raw_spec in LATEST_SPECS:
            version = info.version
        else:
            version = self.matcher.max_satisfying(info.versions, range_upper_bound(dep.raw_spec, info.version))
            if not version:
                self.logger.warning(
                    f"No published version of {dep.name} satisfies '{dep.raw_spec}' "
                    f"(latest is {info.version}), using the spec as the version"
                )
                version = dep.raw_spec

        return ResolvedDependency(
            name=dep.name,
            raw_spec=dep.raw_spec,
            resolved_version=version,
            kind=DependencyKind.SEMVER_RANGE,
            info=info,
        )

    async def _fetch_and_commit(self, resolved: ResolvedDependency, key: CacheKey) -> None:
        self._transition(resolved, InstallState.FETCHING)
        self.logger.info(f"Fetching {resolved.name}@{resolved.resolved_version}")

        async with scratch_area() as scratch:
            await self._call(self.resolver.install(scratch, resolved.install_spec), resolved, "Install")
            self._transition(resolved, InstallState.FETCHED)

            fetched = scratch / "node_modules"
            if not fetched.is_dir():
                raise FetchError(
                    f"Installing {resolved.install_spec} produced no node_modules",
                    context={"dependency": resolved.name, "scratch": str(scratch)},
                )

            self.logger.info(f"Caching {resolved.name}@{resolved.resolved_version} {self.cache.path_for(key)}")
            await asyncio.to_thread(self.cache.commit, fetched, key)
            self._transition(resolved, InstallState.COMMITTED)

    async def _merge(
        self, resolved: ResolvedDependency, key: CacheKey, from_cache: bool
    ) -> tuple[str, InstalledModule]:
        if from_cache:
            self.logger.info(
                f"Installing {resolved.name}@{resolved.resolved_version} from cache: {self.cache.path_for(key)}"
            )
        else:
            self.logger.info(f"Installing {resolved.name}@{resolved.resolved_version}")

        await asyncio.to_thread(self.cache.read_into, key, self.node_modules)
        self._transition(resolved, InstallState.MERGED)

        return resolved.name, InstalledModule(
            version=resolved.resolved_version,
            path=self.node_modules / resolved.name,
            from_cache=from_cache,
            info=resolved.info,
        )

    async def _call(self, awaitable: Awaitable[T], dep: Dependency, operation: str) -> T:
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except TimeoutError:
            raise OperationTimeoutError(
                f"{operation} of {dep.name} timed out after {self.timeout}s",
                context={"dependency": dep.name, "timeout": self.timeout},
            ) from None

    def _key(self, resolved: ResolvedDependency) -> CacheKey:
        return build_cache_key(resolved.name, resolved.resolved_version, self.runtime.arch, self.runtime.abi_version)

    def _transition(self, dep: Dependency, state: InstallState) -> None:
        self.logger.debug(f"{dep.name}: {state.value}")


async def install(
    options: InstallOptions | None = None,
    resolver: PackageResolverProtocol | None = None,
    matcher: VersionMatcherProtocol | None = None,
    runtime: HostRuntime | None = None,
) -> InstallResult:
    """
    Install a project's dependencies through the package cache.

    Process:
    1. Check the project directory and load package.json (fails before anything is created)
    2. Read host runtime facts once (arch, module ABI version) and log the npm version
    3. Install every dependency concurrently (see Installer.run)

    Args:
        options: Install options (defaults: cwd, ~/.npm-fast-install, 5 tasks)
        resolver: Registry/installer collaborator (default: NpmResolver)
        matcher: Version matcher (default: NodeSemverMatcher)
        runtime: Host runtime facts (default: detected from `node`)

    Returns:
        InstallResult for the run

    Raises:
        InvalidDirectoryError: If the project directory doesn't exist
        ManifestMissingError: If there is no package.json
        ManifestError: If package.json can't be parsed
        FastInstallError: The first dependency failure

    Example:
        >>> result = await install(InstallOptions(dir=Path("my-app"), production=True))
        >>> for name, module in result.modules.items():
        ...     print(f"{name}@{module.version}")
    """
    options = options or InstallOptions()
    log = options.logger or logger

    if not options.dir.exists():
        raise InvalidDirectoryError(f"Invalid directory: {options.dir}", context={"dir": str(options.dir)})

    pkg_json = options.dir / "package.json"
    manifest = PackageManifest.from_package_json(pkg_json)
    log.info(f"Loading package.json: {pkg_json}")

    runtime = runtime or await detect_runtime()
    log.info(f"Node.js version: {runtime.node_version}")
    log.info(f"Architecture:    {runtime.arch}")
    log.info(f"Module version:  {runtime.abi_version}")

    resolver = resolver or NpmResolver(production=options.production, allow_shrinkwrap=options.allow_shrinkwrap)
    npm_version = getattr(resolver, "version", None)
    if npm_version is not None:
        try:
            log.info(f"npm version:     {await npm_version()}")
        except FastInstallError as e:
            log.warning(f"Could not read npm version: {e}")

    dependencies = manifest.all_dependencies(production=options.production)
    if not dependencies:
        return InstallResult(node_version=runtime.node_version, arch=runtime.arch, abi_version=runtime.abi_version)

    log.info(f"Found {len(dependencies)} {_pluralize('dependency', 'dependencies', len(dependencies))}")

    cache = CacheStore(options.cache_dir)
    node_modules = options.dir / "node_modules"
    node_modules.mkdir(parents=True, exist_ok=True)

    installer = Installer(
        cache=cache,
        node_modules=node_modules,
        runtime=runtime,
        resolver=resolver,
        matcher=matcher or NodeSemverMatcher(),
        max_tasks=options.max_tasks,
        timeout=options.timeout,
        log=log,
    )
    return await installer.run(dependencies)
