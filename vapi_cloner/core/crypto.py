"""
AES-256-GCM encryption for credentials at rest.

Ciphertexts are stored as ``iv:authTag:ciphertext``, each part hex encoded.
The master key is 32 bytes, supplied as 64 hex characters.
"""

import hashlib
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config.settings import get_settings
from .exceptions.vapi_exceptions import CryptoError

KEY_LENGTH = 32
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16


def _master_key(master_key: Optional[str] = None) -> bytes:
    raw = master_key if master_key is not None else get_settings().master_key
    if not raw:
        raise CryptoError(
            "MASTER_KEY is not set. Generate one with: vapi-cloner generate-key"
        )

    try:
        key = bytes.fromhex(raw.strip())
    except ValueError as e:
        raise CryptoError("MASTER_KEY must be hex encoded") from e

    if len(key) != KEY_LENGTH:
        raise CryptoError(
            f"MASTER_KEY must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters). "
            f"Current length: {len(key)} bytes."
        )
    return key


def encrypt(plaintext: str, master_key: Optional[str] = None) -> str:
    """Encrypt a non-empty string."""
    if not plaintext or not isinstance(plaintext, str):
        raise CryptoError("Plaintext must be a non-empty string")

    key = _master_key(master_key)
    iv = os.urandom(IV_LENGTH)
    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]

    return ":".join([iv.hex(), auth_tag.hex(), ciphertext.hex()])


def decrypt(encrypted: str, master_key: Optional[str] = None) -> str:
    """Decrypt a value produced by :func:`encrypt`."""
    if not encrypted or not isinstance(encrypted, str):
        raise CryptoError("Encrypted text must be a non-empty string")

    parts = encrypted.split(":")
    if len(parts) != 3:
        raise CryptoError('Invalid encrypted format. Expected "iv:authTag:ciphertext"')

    try:
        iv, auth_tag, ciphertext = (bytes.fromhex(part) for part in parts)
    except ValueError as e:
        raise CryptoError("Decryption failed: malformed hex") from e

    if len(iv) != IV_LENGTH:
        raise CryptoError(f"Invalid IV length: {len(iv)} bytes (expected {IV_LENGTH})")
    if len(auth_tag) != AUTH_TAG_LENGTH:
        raise CryptoError(f"Invalid auth tag length: {len(auth_tag)} bytes (expected {AUTH_TAG_LENGTH})")

    key = _master_key(master_key)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + auth_tag, None)
    except InvalidTag as e:
        raise CryptoError("Decryption failed: authentication failed (data may be corrupted or tampered)") from e

    return plaintext.decode("utf-8")


def generate_master_key() -> str:
    """Return a new random hex-encoded 256-bit key."""
    return os.urandom(KEY_LENGTH).hex()


def hash_value(value: str) -> str:
    """SHA-256 hex digest, for comparisons that must not expose the value."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
