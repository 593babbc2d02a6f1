"""npm-fast-install CLI"""

import asyncio
import logging
import sys

import click

from . import __version__
from .config import DEFAULT_CACHE_DIR
from .config import DEFAULT_MAX_TASKS
from .config import InstallOptions
from .exceptions import FastInstallError
from .installer import install

logger = logging.getLogger("npm_fast_install")


@click.command(name="npm-fast-install")
@click.version_option(__version__, prog_name="npm-fast-install")
@click.option(
    "--dir",
    "-d",
    "project_dir",
    default=".",
    show_default=True,
    help="Directory containing package.json.",
)
@click.option(
    "--cache-dir",
    default=DEFAULT_CACHE_DIR,
    show_default=True,
    help="Directory to cache installed packages in.",
)
@click.option(
    "--max-tasks",
    "-j",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_TASKS,
    show_default=True,
    help="Maximum number of packages installed at once.",
)
@click.option("--production", is_flag=True, help="Install only dependencies, not dev or optional ones.")
@click.option("--allow-shrinkwrap", is_flag=True, help="Let npm honor shrinkwrap and lock files.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds before a single registry lookup or install is abandoned.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
def main(
    project_dir: str,
    cache_dir: str,
    max_tasks: int,
    production: bool,
    allow_shrinkwrap: bool,
    timeout: float | None,
    verbose: bool,
):
    """Install npm dependencies, reusing previously installed packages from a cache.

    Example:

      npm-fast-install --dir my-app --production -j 8
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    options = InstallOptions(
        dir=project_dir,
        cache_dir=cache_dir,
        max_tasks=max_tasks,
        production=production,
        allow_shrinkwrap=allow_shrinkwrap,
        timeout=timeout,
        logger=logger,
    )

    try:
        result = asyncio.run(install(options))
    except FastInstallError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    for name, module in sorted(result.modules.items()):
        source = "cache" if module.from_cache else "npm"
        click.echo(f"{name}@{module.version} ({source})")

    count = len(result.modules)
    click.echo(f"Installed {count} {'package' if count == 1 else 'packages'}")


if __name__ == "__main__":
    main()
