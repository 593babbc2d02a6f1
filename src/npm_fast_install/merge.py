"""Directory merging into a shared node_modules.

Several packages are merged into the same destination at once, and they often
share top-level directory names (".bin", "@types"). Copying a whole tree in one
call races with the other copies, so the merge walks the source's top-level
entries and copies each one into its own destination subpath.
"""

import logging
import os
import shutil
from pathlib import Path

from .exceptions import CopyError

logger = logging.getLogger(__name__)


def _link_into(source: Path, target: Path) -> None:
    """Recreate symlink source at target, replacing whatever link is there."""
    link = os.readlink(source)
    if target.is_symlink() or target.is_file():
        target.unlink(missing_ok=True)
    try:
        os.symlink(link, target)
    except FileExistsError:
        # Another merge created the same link first
        if not target.is_symlink() or os.readlink(target) != link:
            raise


def _copy_into(source: Path, target: Path) -> None:
    """Recursively copy the contents of directory source into directory target."""
    target.mkdir(parents=True, exist_ok=True)
    for child in source.iterdir():
        dest = target / child.name
        if child.is_symlink():
            _link_into(child, dest)
        elif child.is_dir():
            _copy_into(child, dest)
        else:
            shutil.copy2(child, dest)


def merge_into(source: Path, destination: Path) -> list[str]:
    """
    Merge a package directory into a shared destination.

    Top-level entries are processed one at a time. Directories are created if
    absent (already existing is fine) and then filled in; files overwrite;
    symlinks are recreated.

    Args:
        source: Directory to copy from (a cache entry)
        destination: Shared destination root (the project's node_modules)

    Returns:
        Names of the top-level entries merged

    Raises:
        CopyError: If any entry could not be copied
    """
    merged: list[str] = []
    try:
        destination.mkdir(parents=True, exist_ok=True)
        for entry in sorted(source.iterdir()):
            dest = destination / entry.name
            if entry.is_symlink():
                _link_into(entry, dest)
            elif entry.is_dir():
                _copy_into(entry, dest)
            else:
                shutil.copy2(entry, dest)
            merged.append(entry.name)
            logger.debug(f"Merged {entry} -> {dest}")
    except OSError as e:
        raise CopyError(
            f"Failed to copy {source} to {destination}: {e}",
            context={"source": str(source), "destination": str(destination)},
        ) from e
    return merged
