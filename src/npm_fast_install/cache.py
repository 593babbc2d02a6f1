"""Package cache keyed by (name, version, arch, ABI version).

Cache layout:
    ~/.npm-fast-install/
    ├── lodash/
    │   └── 3.10.1/
    │       └── x64/
    │           └── 115/          # cache entry: a node_modules tree
    │               ├── lodash/
    │               └── .bin/
    └── @scope/
        └── pkg/
            └── 1.0.0/...

The filesystem is the index: a key exists iff its directory exists. Entries
are only ever created by an atomic rename, so a present directory is always
complete. A commit interrupted mid-copy can leave a hidden `.staging-*`
sibling behind; the next commit of that key removes it once it is an hour
old. Identical keys are assumed to hold interchangeable content and are never
re-validated.
"""

import errno
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from urllib.parse import quote

from pydantic import BaseModel
from pydantic import ConfigDict

from .exceptions import CacheWriteError
from .merge import merge_into

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"
# Staging dirs older than this belong to an interrupted commit
STALE_STAGING_SECONDS = 3600


def _segment(value: str) -> str:
    """Percent-encode one path segment.

    Encoding is injective ("%" itself is encoded), so distinct values never
    collide, and range strings like ">=1 <2" stay filesystem-safe.
    """
    encoded = quote(value, safe="@+")
    if encoded in ("", ".", ".."):
        return encoded.replace(".", "%2E") or "%00"
    return encoded


class CacheKey(BaseModel):
    """Identity of one cache entry."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    arch: str
    abi_version: str

    @property
    def relative_path(self) -> Path:
        # Scoped names ("@scope/pkg") nest one level deeper; a bare "@scope" is not a valid package
        name_parts = [_segment(part) for part in self.name.split("/")]
        return Path(*name_parts, _segment(self.version), _segment(self.arch), _segment(self.abi_version))

    def __str__(self) -> str:
        return f"{self.name}@{self.version} ({self.arch}, abi {self.abi_version})"


def build_cache_key(name: str, version: str, arch: str, abi_version: str | int) -> CacheKey:
    """Build the cache key for a resolved package.

    Args:
        name: Package name
        version: Concrete resolved version
        arch: CPU architecture (e.g., "x64")
        abi_version: Native module ABI version of the host runtime (e.g., 115)
    """
    return CacheKey(name=name, version=version, arch=arch, abi_version=str(abi_version))


class CacheStore:
    """
    Package cache rooted at an app-provided directory.

    Safe for concurrent use without locks: commit is idempotent for identical
    keys and reads never see partial entries.
    """

    def __init__(self, cache_dir: Path):
        """Initialize store.

        Args:
            cache_dir: Cache root (created if missing)
        """
        self.cache_dir = cache_dir
        if not self.cache_dir.exists():
            logger.info(f"Initializing cache dir: {self.cache_dir}")
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: CacheKey) -> Path:
        return self.cache_dir / key.relative_path

    def exists(self, key: CacheKey) -> bool:
        return self.path_for(key).is_dir()

    def commit(self, source_dir: Path, key: CacheKey) -> Path:
        """
        Move fetched contents into the cache.

        If the entry already exists, or another worker commits the same key
        while this one is moving, the commit is a no-op and source_dir is left
        in place for the caller to clean up.

        Args:
            source_dir: Fetched node_modules tree (usually inside a scratch area)
            key: Cache key to commit under

        Returns:
            Path of the cache entry

        Raises:
            CacheWriteError: If the entry could not be written
        """
        entry = self.path_for(key)
        if entry.is_dir():
            logger.debug(f"Cache entry already present, skipping commit: {entry}")
            return entry

        try:
            entry.parent.mkdir(parents=True, exist_ok=True)
            self._remove_stale_staging(entry)
            try:
                os.rename(source_dir, entry)
            except OSError as e:
                if e.errno != errno.EXDEV:
                    raise
                # Different filesystem: copy next to the entry, then rename
                self._stage_and_rename(source_dir, entry)
        except OSError as e:
            if entry.is_dir():
                logger.debug(f"Lost commit race for {key}, using existing entry")
                return entry
            raise CacheWriteError(
                f"Failed to cache {key} at {entry}: {e}",
                context={"key": str(key), "path": str(entry)},
            ) from e

        return entry

    def _remove_stale_staging(self, entry: Path) -> None:
        cutoff = time.time() - STALE_STAGING_SECONDS
        for staging in entry.parent.glob(f"{STAGING_PREFIX}{entry.name}-*"):
            try:
                if staging.stat().st_mtime < cutoff:
                    logger.debug(f"Removing stale staging dir: {staging}")
                    shutil.rmtree(staging, ignore_errors=True)
            except FileNotFoundError:
                continue

    def _stage_and_rename(self, source_dir: Path, entry: Path) -> None:
        staging = entry.parent / f"{STAGING_PREFIX}{entry.name}-{uuid.uuid4().hex}"
        try:
            shutil.copytree(source_dir, staging, symlinks=True)
            os.rename(staging, entry)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

    def read_into(self, key: CacheKey, destination: Path) -> list[str]:
        """Copy a cache entry into destination (see merge_into).

        Raises:
            CopyError: If copying fails
        """
        return merge_into(self.path_for(key), destination)
