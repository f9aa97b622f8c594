"""
Secret encryption — AES-256-GCM with PBKDF2-SHA256 key derivation.

Encrypted files are JSON envelopes:

    {
      "version": 1,
      "algorithm": "aes-256-gcm",
      "kdf": "pbkdf2-sha256",
      "kdf_iterations": 100000,
      "salt": "<b64>", "iv": "<b64>", "tag": "<b64>", "ciphertext": "<b64>"
    }

``encrypt_bytes`` produces one, ``decrypt_bytes`` consumes one. The
``encrypt`` CLI command writes them, the decrypt handler reads them.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from blueprint.core.errors import CryptoError

logger = logging.getLogger(__name__)

# ── Crypto constants ─────────────────────────────────────────────────
KDF_ITERATIONS = 100_000
SALT_BYTES = 16
IV_BYTES = 12
KEY_BYTES = 32
TAG_BYTES = 16

ENCRYPTED_SUFFIX = ".enc"


def _derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """Derive an AES-256 key from a password using PBKDF2-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt_bytes(plaintext: bytes, password: str) -> bytes:
    """Encrypt ``plaintext`` into a JSON envelope."""
    if not password:
        raise CryptoError("Password must not be empty")

    salt = os.urandom(SALT_BYTES)
    iv = os.urandom(IV_BYTES)
    ct_and_tag = AESGCM(_derive_key(password, salt)).encrypt(iv, plaintext, None)

    envelope = {
        "version": 1,
        "algorithm": "aes-256-gcm",
        "kdf": "pbkdf2-sha256",
        "kdf_iterations": KDF_ITERATIONS,
        "salt": base64.b64encode(salt).decode("ascii"),
        "iv": base64.b64encode(iv).decode("ascii"),
        "tag": base64.b64encode(ct_and_tag[-TAG_BYTES:]).decode("ascii"),
        "ciphertext": base64.b64encode(ct_and_tag[:-TAG_BYTES]).decode("ascii"),
    }
    return (json.dumps(envelope, indent=2) + "\n").encode("utf-8")


def decrypt_bytes(ciphertext: bytes, password: str) -> bytes:
    """Decrypt a JSON envelope produced by ``encrypt_bytes``.

    Raises:
        CryptoError: Wrong password, or not a valid envelope.
    """
    try:
        envelope = json.loads(ciphertext.decode("utf-8"))
        salt = base64.b64decode(envelope["salt"])
        iv = base64.b64decode(envelope["iv"])
        tag = base64.b64decode(envelope["tag"])
        body = base64.b64decode(envelope["ciphertext"])
        iterations = int(envelope.get("kdf_iterations", KDF_ITERATIONS))
    except (ValueError, KeyError, TypeError) as e:
        raise CryptoError(f"Invalid encrypted file format: {e}") from e

    key = _derive_key(password, salt, iterations)
    try:
        return AESGCM(key).decrypt(iv, body + tag, None)
    except InvalidTag as e:
        raise CryptoError("Wrong password — decryption failed") from e


def encrypt_file(source: Path, password: str, dest: Path | None = None) -> Path:
    """Encrypt ``source`` to ``dest`` (default: ``<source>.enc``)."""
    dest = dest or source.with_name(source.name + ENCRYPTED_SUFFIX)
    dest.write_bytes(encrypt_bytes(source.read_bytes(), password))
    logger.info("Encrypted %s → %s", source, dest)
    return dest
