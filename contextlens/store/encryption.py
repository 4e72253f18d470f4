"""AES-256-GCM encryption for stored event payloads.

Each payload is encrypted with a random nonce. The key either comes from a
user passphrase (``derive_key``) or is generated once and kept in a key file
readable only by the owner (``load_or_create_key``).
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96 bits for AES-GCM
KEY_SIZE = 32
KEY_FILENAME = ".store_key"


def derive_key(passphrase: str) -> bytes:
    """Derive a 32-byte key from a passphrase with a single SHA-256 pass."""
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


def load_or_create_key(key_path: str | Path) -> bytes:
    """Read the store key from ``key_path``, generating it on first run."""
    key_path = Path(key_path)
    if key_path.exists():
        key = key_path.read_bytes()
        if len(key) >= KEY_SIZE:
            return key[:KEY_SIZE]
        logger.warning("Store key at %s is truncated, generating a new one", key_path)

    key_path.parent.mkdir(parents=True, exist_ok=True)
    key = os.urandom(KEY_SIZE)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    os.chmod(key_path, 0o600)
    logger.info("Generated new store encryption key at %s", key_path)
    return key


def encrypt_payload(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt a payload using AES-256-GCM.

    Returns: nonce (12 bytes) || ciphertext
    """
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key[:KEY_SIZE]).encrypt(nonce, plaintext, None)


def decrypt_payload(data: bytes, key: bytes) -> bytes:
    """Decrypt a payload produced by encrypt_payload.

    Raises cryptography.exceptions.InvalidTag if the key is wrong or the
    data was tampered with.
    """
    nonce, ciphertext = data[:NONCE_SIZE], data[NONCE_SIZE:]
    return AESGCM(key[:KEY_SIZE]).decrypt(nonce, ciphertext, None)
