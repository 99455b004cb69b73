"""Configuration utilities and the ``config`` command group.

Settings are stored as strings in ``~/.securexfer/config.json`` and supply
the defaults of the download and upload commands.

Commands:
- config show: Print the effective settings
- config set: Change one setting
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from securexfer.core.config import (
    DEFAULT_ATTEMPT_BUDGET,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENT_CHUNKS,
    DEFAULT_UPLOAD_METHOD,
)

# Setting name -> default value
DEFAULTS: dict[str, str] = {
    "chunk_size": str(DEFAULT_CHUNK_SIZE),
    "concurrency": str(DEFAULT_MAX_CONCURRENT_CHUNKS),
    "attempt_budget": str(DEFAULT_ATTEMPT_BUDGET),
    "upload_method": DEFAULT_UPLOAD_METHOD,
    "download_dir": "",
}

_POSITIVE_INT_SETTINGS = ("chunk_size", "concurrency", "attempt_budget")


def get_config_dir() -> Path:
    """Get the configuration directory for securexfer.

    Returns:
        Path to ~/.securexfer or equivalent.
    """
    return Path.home() / ".securexfer"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_setting(name: str) -> str:
    """Get a setting from the config file, falling back to its default."""
    value = load_config().get(name)
    return value if value else DEFAULTS[name]


def get_int_setting(name: str) -> int:
    """Get a positive integer setting.

    Falls back to the default if the stored value is not a positive integer.
    """
    try:
        value = int(get_setting(name))
    except ValueError:
        value = 0
    return value if value > 0 else int(DEFAULTS[name])


def get_download_dir() -> Path:
    """Get the default download directory (configured, or the current directory)."""
    configured = get_setting("download_dir")
    if configured:
        return Path(configured).expanduser().resolve()
    return Path.cwd()


def validate_setting(name: str, value: str) -> str:
    """Check and normalize a setting value.

    Raises:
        click.BadParameter: If the name is unknown or the value is invalid.
    """
    if name not in DEFAULTS:
        raise click.BadParameter(
            f"unknown setting {name!r} (choose from {', '.join(sorted(DEFAULTS))})"
        )
    if name in _POSITIVE_INT_SETTINGS:
        if not value.isdigit() or int(value) < 1:
            raise click.BadParameter(f"{name} must be a positive integer, got {value!r}")
        return str(int(value))
    if name == "upload_method":
        return value.upper()
    if name == "download_dir":
        return str(Path(value).expanduser().resolve())
    return value


@click.group("config")
def config_group() -> None:
    """Show or change default transfer settings."""


@config_group.command("show")
def config_show() -> None:
    """Print the effective settings."""
    stored = load_config()
    for name in sorted(DEFAULTS):
        value = stored.get(name) or DEFAULTS[name]
        source = "" if stored.get(name) else " (default)"
        click.echo(f"{name} = {value or '<current directory>'}{source}")


@config_group.command("set")
@click.argument("name")
@click.argument("value")
def config_set(name: str, value: str) -> None:
    """Set NAME to VALUE."""
    try:
        normalized = validate_setting(name, value)
    except click.BadParameter as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    config = load_config()
    config[name] = normalized
    save_config(config)
    click.echo(f"{name} = {normalized}")
