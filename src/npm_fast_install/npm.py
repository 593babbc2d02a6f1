"""Default collaborators backed by the npm and node executables.

Both binaries are driven as asyncio subprocesses so registry lookups and
installs for different dependencies overlap.
"""

import asyncio
import json
import logging
from pathlib import Path

from .exceptions import FastInstallError
from .exceptions import FetchError
from .exceptions import RegistryError
from .schema import HostRuntime
from .schema import PackageInfo

logger = logging.getLogger(__name__)


async def _run(*args: str) -> tuple[int, str, str]:
    """Run a command, returning (exit code, stdout, stderr).

    Raises:
        OSError: If the executable can't be started
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        # Timed out or cancelled: don't leave npm running
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode or 0, stdout.decode(errors="replace"), stderr.decode(errors="replace")


class NpmResolver:
    """
    PackageResolverProtocol implementation using the npm CLI.

    Example:
        >>> resolver = NpmResolver(production=True)
        >>> info = await resolver.view("lodash")
        >>> await resolver.install(Path("/tmp/scratch"), "lodash@3.10.1")
    """

    def __init__(self, npm: str = "npm", production: bool = False, allow_shrinkwrap: bool = False):
        """Initialize resolver.

        Args:
            npm: npm executable
            production: Skip dev dependencies of installed packages
            allow_shrinkwrap: Honor shrinkwrap/package-lock files
        """
        self.npm = npm
        self.production = production
        self.allow_shrinkwrap = allow_shrinkwrap

    async def version(self) -> str:
        """Return the npm version string.

        Raises:
            FastInstallError: If npm can't be run
        """
        try:
            code, stdout, stderr = await _run(self.npm, "--version")
        except OSError as e:
            raise FastInstallError(f"Unable to run {self.npm}: {e}") from e

        if code != 0:
            raise FastInstallError(f"{self.npm} exited with code {code}: {stderr.strip()}")
        return stdout.strip()

    async def view(self, name: str) -> PackageInfo:
        context = {"dependency": name}
        try:
            code, stdout, stderr = await _run(self.npm, "view", name, "version", "versions", "--json")
        except OSError as e:
            raise RegistryError(f"Unable to run {self.npm}: {e}", context=context) from e

        if code != 0:
            raise RegistryError(
                f"Failed to look up {name} in the registry: {stderr.strip() or f'exit code {code}'}",
                context={**context, "stderr": stderr},
            )

        try:
            data = json.loads(stdout)
        except ValueError as e:
            raise RegistryError(f"Invalid registry response for {name}: {e}", context=context) from e

        if not isinstance(data, dict) or not isinstance(data.get("version"), str):
            raise RegistryError(f"Registry response for {name} has no version", context=context)

        versions = data.get("versions") or []
        # npm prints a bare string when only one version is published
        if isinstance(versions, str):
            versions = [versions]

        return PackageInfo(version=data["version"], versions=versions)

    async def install(self, target_dir: Path, spec: str) -> None:
        args = [
            self.npm,
            "install",
            "--prefix",
            str(target_dir),
            "--no-save",
            "--no-audit",
            "--no-fund",
            "--no-progress",
            "--color=false",
            "--loglevel=silent",
            f"--package-lock={'true' if self.allow_shrinkwrap else 'false'}",
        ]
        if self.production:
            args.append("--omit=dev")
        args.append(spec)

        context = {"spec": spec, "target_dir": str(target_dir)}
        logger.debug(f"Running: {' '.join(args)}")
        try:
            code, _, stderr = await _run(*args)
        except OSError as e:
            raise FetchError(f"Unable to run {self.npm}: {e}", context=context) from e

        if code != 0:
            raise FetchError(
                f"Failed to install {spec}: {stderr.strip() or f'exit code {code}'}",
                context={**context, "stderr": stderr},
            )


async def detect_runtime(node: str = "node") -> HostRuntime:
    """Read version, architecture and module ABI version from the host Node.js.

    Raises:
        FastInstallError: If node can't be run or its output is unexpected
    """
    script = "console.log(JSON.stringify([process.version, process.arch, process.versions.modules]))"
    try:
        code, stdout, stderr = await _run(node, "-e", script)
    except OSError as e:
        raise FastInstallError(f"Unable to run {node}: {e}") from e

    if code != 0:
        raise FastInstallError(f"{node} exited with code {code}: {stderr.strip()}")

    try:
        node_version, arch, modules = json.loads(stdout)
    except (ValueError, TypeError) as e:
        raise FastInstallError(f"Unexpected output from {node}: {stdout!r}") from e

    return HostRuntime(node_version=node_version, arch=arch, abi_version=str(modules))
