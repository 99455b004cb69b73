"""Keystore management commands for the securexfer CLI.

Commands:
- init: Create the keystore holding the transfer key
- unlock: Cache the transfer key in the OS keyring
- lock: Remove the cached transfer key
- export-key: Print the transfer key
- import-key: Replace the transfer key with one from another machine
"""

from __future__ import annotations

import sys

import click

from securexfer.cli.config import get_config_dir
from securexfer.keystore import (
    KEYFILE_NAME,
    KeyStore,
    KeyStoreError,
    create_keystore,
    load_cached_keystore,
    load_keystore,
    read_keyfile,
)


def require_keystore() -> None:
    """Exit with an error if the keystore has not been created."""
    if not (get_config_dir() / KEYFILE_NAME).exists():
        click.echo("Error: securexfer not initialized. Run 'securexfer init' first.", err=True)
        sys.exit(1)


def unlock_keystore(use_cache: bool = True) -> KeyStore:
    """Open the keystore for use.

    The key cached in the OS keyring by a previous unlock is used when
    available; otherwise the master password is prompted for.

    Args:
        use_cache: Set to False to always require the master password.

    Exits with status 1 if the keystore is missing or the password is wrong.
    """
    require_keystore()
    config_dir = get_config_dir()
    try:
        if use_cache:
            keystore = load_cached_keystore(config_dir)
            if keystore is not None:
                return keystore
        password = click.prompt("Enter master password", hide_input=True)
        return load_keystore(password, config_dir)
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command()
def init() -> None:
    """Create the keystore.

    Generates the key that encrypts downloads at rest and protects it
    with a master password.
    """
    config_dir = get_config_dir()

    if (config_dir / KEYFILE_NAME).exists():
        click.echo("Error: securexfer already initialized.", err=True)
        click.echo(f"Keystore exists at: {config_dir / KEYFILE_NAME}", err=True)
        sys.exit(1)

    password = click.prompt(
        "Create master password",
        hide_input=True,
        confirmation_prompt="Confirm master password",
    )

    try:
        keystore = create_keystore(password, config_dir)
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("securexfer initialized successfully!")
    click.echo(f"Key ID: {keystore.key_id}")
    click.echo(f"Config directory: {config_dir}")


@click.command("export-key")
def export_key() -> None:
    """Print the transfer key.

    WARNING: Keep this key secret! Anyone with this key can decrypt
    unfinished downloads.
    """
    keystore = unlock_keystore(use_cache=False)
    click.echo("\nTransfer key (keep secret!):")
    click.echo(keystore.export_key())


@click.command("import-key")
@click.argument("key")
def import_key(key: str) -> None:
    """Import a transfer key.

    KEY is the base64-encoded key printed by 'securexfer export-key' on
    another machine.
    """
    require_keystore()
    password = click.prompt("Enter master password", hide_input=True)

    try:
        keystore = load_keystore(password, get_config_dir())
        keystore.import_key(key, password)
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("Transfer key imported successfully!")
    click.echo(f"New Key ID: {keystore.key_id}")


@click.command()
def unlock() -> None:
    """Unlock the keystore.

    Caches the transfer key in the OS keyring so download does not prompt
    for the master password until 'securexfer lock' is run.
    """
    keystore = unlock_keystore(use_cache=False)
    click.echo("Keystore unlocked successfully!")
    click.echo(f"Key ID: {keystore.key_id}")


@click.command()
def lock() -> None:
    """Remove the cached transfer key from the OS keyring."""
    require_keystore()
    config_dir = get_config_dir()
    try:
        keystore = KeyStore(config_dir=config_dir, **read_keyfile(config_dir))
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    keystore.lock()
    click.echo("Keystore locked.")
