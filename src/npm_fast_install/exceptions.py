"""Install and cache exceptions.

Run-level errors (directory, manifest) are raised before any work starts.
Everything else fails a single dependency; the orchestrator reports the first
one for the whole run.
"""


class FastInstallError(Exception):
    """Base exception for every cache and install failure.

    `context` names what failed: usually the dependency, plus the spec, cache
    key or paths involved. The orchestrator fills in "dependency" when a
    collaborator raised without it.
    """

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InvalidDirectoryError(FastInstallError):
    """Target project directory does not exist."""


class ManifestMissingError(FastInstallError):
    """No package.json in the target project directory."""


class ManifestError(FastInstallError):
    """package.json exists but could not be parsed."""


class MalformedGitSpecError(FastInstallError):
    """Git dependency without a #<version> fragment."""


class RegistryError(FastInstallError):
    """Registry metadata lookup failed."""


class FetchError(FastInstallError):
    """Package fetch/build into a scratch area failed."""


class CacheWriteError(FastInstallError):
    """Committing fetched contents to the cache failed."""


class CopyError(FastInstallError):
    """Copying a cache entry into the destination failed."""


class OperationTimeoutError(FastInstallError):
    """A resolver call exceeded the configured timeout."""
