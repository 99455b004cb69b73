"""Cryptographic functions for securexfer.

This module provides:
- Key derivation using Argon2id
- Authenticated encryption using AES-256-GCM (used to wrap key material)
- Length-preserving, offset-addressable AES-CTR (used for working files)
"""

import hashlib
import hmac
import os

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# Argon2id parameters (OWASP recommendations for password hashing)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # 256 bits

# AES-GCM constants
NONCE_SIZE = 12  # 96 bits (recommended for AES-GCM)
SALT_SIZE = 16  # 128 bits
KEY_SIZE = 32  # 256 bits

# AES-CTR constants
AES_BLOCK_SIZE = 16
CTR_NONCE_SIZE = 8  # high half of the 128-bit counter block
VALID_KEY_SIZES = (16, 24, 32)


def generate_salt() -> bytes:
    """Generate a cryptographically secure random salt.

    Returns:
        16 bytes of random data for use as salt in key derivation.
    """
    return os.urandom(SALT_SIZE)


def generate_key() -> bytes:
    """Generate a random 256-bit key."""
    return os.urandom(KEY_SIZE)


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 256-bit encryption key from a password using Argon2id.

    Args:
        password: The user's master password.
        salt: A 16-byte random salt (use generate_salt()).

    Returns:
        32 bytes (256 bits) derived key suitable for AES-256.
    """
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )


def seal(data: bytes, key: bytes) -> bytes:
    """Encrypt data using AES-256-GCM with a random nonce.

    Args:
        data: Plaintext data to encrypt.
        key: 32-byte encryption key.

    Returns:
        Encrypted data in format: nonce (12 bytes) || ciphertext || auth_tag (16 bytes)
    """
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(nonce, data, None)
    return nonce + ciphertext


def unseal(encrypted: bytes, key: bytes) -> bytes:
    """Decrypt data encrypted with seal.

    Args:
        encrypted: Data in format: nonce (12 bytes) || ciphertext || auth_tag (16 bytes)
        key: 32-byte encryption key.

    Returns:
        Decrypted plaintext data.

    Raises:
        cryptography.exceptions.InvalidTag: If authentication fails (wrong key or tampered data).
    """
    nonce = encrypted[:NONCE_SIZE]
    ciphertext = encrypted[NONCE_SIZE:]
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext, None)


def derive_stream_nonce(key: bytes, label: str) -> bytes:
    """Derive a deterministic CTR nonce for a named stream.

    The same key and label always give the same nonce, so any byte of a
    stream can be re-encrypted independently.

    Args:
        key: Encryption key.
        label: Stream label (e.g. a job key).

    Returns:
        8-byte nonce.
    """
    return hmac.new(key, label.encode("utf-8"), hashlib.sha256).digest()[:CTR_NONCE_SIZE]


def ctr_transform(data: bytes, key: bytes, nonce: bytes, offset: int) -> bytes:
    """Apply the AES-CTR keystream at a byte offset of a stream.

    Encryption and decryption are the same operation. Output length always
    equals input length, so ciphertext can be written at the plaintext offset.

    Args:
        data: Bytes to transform.
        key: 16, 24 or 32-byte AES key.
        nonce: 8-byte stream nonce (see derive_stream_nonce()).
        offset: Position of data[0] within the stream.

    Returns:
        Transformed bytes.
    """
    if offset < 0:
        raise ValueError(f"Offset must be non-negative, got {offset}")
    if not data:
        return b""

    block, skip = divmod(offset, AES_BLOCK_SIZE)
    counter = nonce + block.to_bytes(AES_BLOCK_SIZE - len(nonce), "big")
    encryptor = Cipher(algorithms.AES(key), modes.CTR(counter)).encryptor()
    if skip:
        encryptor.update(b"\x00" * skip)
    return encryptor.update(data) + encryptor.finalize()
