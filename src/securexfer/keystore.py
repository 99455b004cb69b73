"""Password-protected storage of the transfer key.

This module provides:
- KeyStore: Holds the key that encrypts downloaded chunks at rest
- create_keystore / load_keystore / load_cached_keystore: Keyfile lifecycle
- OS keyring caching of the unlocked key
- Key export/import so several machines can decrypt the same working files

The transfer key is a random 256-bit AES key. It is sealed with AES-256-GCM
under a master key derived from the user's password with Argon2id, and the
result is stored in ``keyfile.json``.
"""

from __future__ import annotations

import base64
import binascii
import contextlib
import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import keyring
from cryptography.exceptions import InvalidTag

from securexfer.core.crypto import KEY_SIZE, derive_key, generate_key, generate_salt, seal, unseal

logger = logging.getLogger(__name__)

KEYFILE_NAME = "keyfile.json"
KEYRING_SERVICE = "securexfer"


class KeyStoreError(Exception):
    """Exception raised for keystore-related errors."""


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _cache_key(key_id: str, transfer_key: bytes) -> None:
    """Cache the unlocked key in the OS keyring, if one is available."""
    try:
        keyring.set_password(KEYRING_SERVICE, key_id, _b64(transfer_key))
    except Exception as e:
        logger.debug(f"Keyring unavailable, key not cached: {e}")


def _unwrap(wrapped_key: bytes, password: str, salt: bytes) -> bytes:
    master_key = derive_key(password, salt)
    try:
        return unseal(wrapped_key, master_key)
    except (InvalidTag, ValueError) as e:
        raise KeyStoreError("Invalid password or corrupted keyfile") from e


class KeyStore:
    """Transfer key plus the metadata needed to re-open it.

    Use create_keystore() or load_keystore() rather than the constructor.
    """

    def __init__(
        self,
        config_dir: Path,
        salt: bytes,
        wrapped_key: bytes,
        key_id: str,
        created_at: str,
        transfer_key: bytes | None = None,
    ) -> None:
        self._config_dir = config_dir
        self._salt = salt
        self._wrapped_key = wrapped_key
        self._key_id = key_id
        self._created_at = created_at
        self._transfer_key = transfer_key

    @property
    def key_id(self) -> str:
        """Unique identifier of the current transfer key."""
        return self._key_id

    @property
    def created_at(self) -> str:
        """ISO timestamp of keystore creation."""
        return self._created_at

    @property
    def keyfile(self) -> Path:
        """Path of the keyfile."""
        return self._config_dir / KEYFILE_NAME

    @property
    def is_unlocked(self) -> bool:
        """Check if the transfer key is available in memory."""
        return self._transfer_key is not None

    @property
    def transfer_key(self) -> bytes:
        """The transfer key, from memory or the keyring cache.

        Raises:
            KeyStoreError: If the keystore is locked and nothing is cached.
        """
        if self._transfer_key is None:
            cached = keyring.get_password(KEYRING_SERVICE, self._key_id)
            if not cached:
                raise KeyStoreError("Keystore is locked. Call unlock() first.")
            self._transfer_key = base64.b64decode(cached)
        return self._transfer_key

    def unlock(self, password: str) -> None:
        """Unlock the keystore with the master password.

        Raises:
            KeyStoreError: If the password is incorrect.
        """
        self._transfer_key = _unwrap(self._wrapped_key, password, self._salt)
        _cache_key(self._key_id, self._transfer_key)

    def lock(self) -> None:
        """Forget the in-memory key and drop it from the keyring cache."""
        self._transfer_key = None
        with contextlib.suppress(Exception):
            keyring.delete_password(KEYRING_SERVICE, self._key_id)

    def export_key(self) -> str:
        """Export the transfer key as base64."""
        return _b64(self.transfer_key)

    def import_key(self, key_b64: str, password: str) -> None:
        """Replace the transfer key with one exported from another machine.

        The imported key is sealed under a fresh salt and a new key id.

        Args:
            key_b64: Base64-encoded transfer key.
            password: Master password protecting the keyfile.

        Raises:
            KeyStoreError: If the key is not valid base64 or has the wrong length.
        """
        try:
            key = base64.b64decode(key_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyStoreError("Invalid key format: not valid base64") from e

        if len(key) != KEY_SIZE:
            raise KeyStoreError(f"Invalid key: must be {KEY_SIZE} bytes, got {len(key)}")

        self._salt = generate_salt()
        self._wrapped_key = seal(key, derive_key(password, self._salt))
        self._key_id = str(uuid.uuid4())
        self._transfer_key = key
        self.save()
        _cache_key(self._key_id, key)
        logger.info(f"Imported transfer key {self._key_id}")

    def save(self) -> None:
        """Write the keyfile."""
        self._config_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "salt": _b64(self._salt),
            "wrapped_key": _b64(self._wrapped_key),
            "key_id": self._key_id,
            "created_at": self._created_at,
        }
        self.keyfile.write_text(json.dumps(data, indent=2))


def create_keystore(password: str, config_dir: Path) -> KeyStore:
    """Create a keystore holding a new random transfer key.

    Args:
        password: Master password for the keystore.
        config_dir: Directory to store the keyfile.

    Returns:
        Unlocked KeyStore instance.

    Raises:
        KeyStoreError: If a keystore already exists.
    """
    config_dir = Path(config_dir)
    keyfile = config_dir / KEYFILE_NAME
    if keyfile.exists():
        raise KeyStoreError(f"Keystore already exists at {keyfile}")

    transfer_key = generate_key()
    salt = generate_salt()
    keystore = KeyStore(
        config_dir=config_dir,
        salt=salt,
        wrapped_key=seal(transfer_key, derive_key(password, salt)),
        key_id=str(uuid.uuid4()),
        created_at=datetime.now(UTC).isoformat(),
        transfer_key=transfer_key,
    )
    keystore.save()
    _cache_key(keystore.key_id, transfer_key)
    logger.info(f"Created keystore {keystore.key_id} at {keyfile}")
    return keystore


def read_keyfile(config_dir: Path) -> dict[str, Any]:
    """Read and parse the keyfile without unlocking it.

    Raises:
        KeyStoreError: If the keyfile is missing or malformed.
    """
    keyfile = Path(config_dir) / KEYFILE_NAME
    if not keyfile.exists():
        raise KeyStoreError(f"Keystore not found at {keyfile}")

    try:
        data = json.loads(keyfile.read_text())
        return {
            "salt": base64.b64decode(data["salt"]),
            "wrapped_key": base64.b64decode(data["wrapped_key"]),
            "key_id": data["key_id"],
            "created_at": data["created_at"],
        }
    except json.JSONDecodeError as e:
        raise KeyStoreError(f"Corrupted keyfile: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        raise KeyStoreError(f"Invalid keyfile format: {e}") from e


def load_cached_keystore(config_dir: Path) -> KeyStore | None:
    """Open the keystore with the key cached in the OS keyring.

    Args:
        config_dir: Directory containing the keyfile.

    Returns:
        Unlocked KeyStore, or None if no usable key is cached for the current key id.

    Raises:
        KeyStoreError: If the keystore is missing or malformed.
    """
    config_dir = Path(config_dir)
    fields = read_keyfile(config_dir)
    try:
        cached = keyring.get_password(KEYRING_SERVICE, fields["key_id"])
    except Exception as e:
        logger.debug(f"Keyring unavailable, no cached key: {e}")
        return None
    if not cached:
        return None

    try:
        transfer_key = base64.b64decode(cached, validate=True)
    except (binascii.Error, ValueError):
        transfer_key = b""
    if len(transfer_key) != KEY_SIZE:
        logger.warning(f"Ignoring malformed cached key for {fields['key_id']}")
        return None
    return KeyStore(config_dir=config_dir, transfer_key=transfer_key, **fields)


def load_keystore(password: str, config_dir: Path) -> KeyStore:
    """Load and unlock an existing keystore.

    Args:
        password: Master password for the keystore.
        config_dir: Directory containing the keyfile.

    Returns:
        Unlocked KeyStore instance.

    Raises:
        KeyStoreError: If the keystore is missing, malformed, or the password is wrong.
    """
    config_dir = Path(config_dir)
    fields = read_keyfile(config_dir)
    keystore = KeyStore(config_dir=config_dir, **fields)
    keystore.unlock(password)
    return keystore
