"""Install options and path handling."""

import logging
import os
import re
import sys
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

DEFAULT_CACHE_DIR = "~/.npm-fast-install"
DEFAULT_MAX_TASKS = 5

_WINDOWS_ENV_VAR = re.compile(r"%([^%]*)%")


def resolve_path(path: str | Path) -> Path:
    """Resolve a user-supplied path to an absolute one.

    Expands a leading "~" and, on Windows, %VAR% references (unknown variables
    are left untouched).

    Examples:
        >>> resolve_path("~/.npm-fast-install")  # doctest: +SKIP
        PosixPath('/home/me/.npm-fast-install')
    """
    text = str(path)
    if sys.platform == "win32":
        text = _WINDOWS_ENV_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)
    return Path(text).expanduser().absolute()


class InstallOptions(BaseModel):
    """
    Options for an install run.

    Attributes:
        dir: Project directory containing package.json (default: cwd)
        cache_dir: Cache root (default: ~/.npm-fast-install)
        max_tasks: Maximum number of dependencies installed at once (1 = sequential)
        production: Install only `dependencies`, not optional/dev ones
        allow_shrinkwrap: Let npm honor shrinkwrap/package-lock files
        timeout: Per registry/install call timeout in seconds (None = no timeout)
        logger: Logger for progress messages (default: this package's logger)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, validate_default=True)

    dir: Path = Field(default_factory=Path.cwd)
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)
    max_tasks: int = Field(default=DEFAULT_MAX_TASKS, ge=1)
    production: bool = False
    allow_shrinkwrap: bool = False
    timeout: float | None = Field(default=None, gt=0)
    logger: logging.Logger | None = None

    @field_validator("dir", "cache_dir", mode="before")
    @classmethod
    def _resolve(cls, value: str | Path) -> Path:
        return resolve_path(value)
