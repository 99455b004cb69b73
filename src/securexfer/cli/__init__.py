"""Command-line interface for securexfer.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Create the keystore
- unlock: Cache the transfer key in the OS keyring
- lock: Remove the cached transfer key
- export-key: Export the transfer key
- import-key: Import a transfer key
- download: Download a file in encrypted, resumable chunks
- upload: Upload a file in chunks
- config: Show or change default settings
"""

from __future__ import annotations

import logging
import sys

import click

from securexfer.cli.config import (
    config_group,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from securexfer.cli.keystore import export_key, import_key, init, lock, unlock
from securexfer.cli.transfer import download, upload


def setup_logging(verbose: bool) -> None:
    """Send securexfer logs to stderr.

    Only warnings and errors are shown unless ``verbose`` is set.
    """
    securexfer_logger = logging.getLogger("securexfer")
    for handler in securexfer_logger.handlers[:]:
        securexfer_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    securexfer_logger.addHandler(handler)
    securexfer_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    securexfer_logger.propagate = False


@click.group()
@click.version_option(package_name="securexfer")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def cli(verbose: bool) -> None:
    """securexfer - Resumable, encrypted, chunked file transfers."""
    setup_logging(verbose)


# Keystore commands
cli.add_command(init)
cli.add_command(unlock)
cli.add_command(lock)
cli.add_command(export_key)
cli.add_command(import_key)

# Transfer commands
cli.add_command(download)
cli.add_command(upload)

# Settings
cli.add_command(config_group)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
    "setup_logging",
]
