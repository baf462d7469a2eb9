# Overview: Encryption at rest for face descriptors using a versioned Fernet key ring.

"""
Face Descriptor Encryption

SECURITY:
- Descriptors are JSON-encoded and sealed with Fernet (AES-128-CBC + HMAC)
- Every ciphertext is stored next to the id of the key that sealed it, so
  keys can rotate: new enrollments use DESCRIPTOR_ACTIVE_KEY_ID, old rows
  keep decrypting with their own key as long as it stays in the ring
- Without DESCRIPTOR_ENCRYPTION_KEYS a development key is derived from
  SECRET_KEY with PBKDF2-HMAC-SHA256; production must configure real keys
- Plaintext values and key material never appear in logs or exceptions

Config format: DESCRIPTOR_ENCRYPTION_KEYS="v1:<fernet key>,v2:<fernet key>"
"""

from __future__ import annotations

import base64
import json
import math
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import current_app


DEV_KEY_SALT = b"attendguard-descriptor-dev-key"
DEV_KEY_ITERATIONS = 100_000


class DescriptorDecryptionError(Exception):
    """Stored descriptor could not be decrypted or decoded."""


class DescriptorKeyConfigError(ValueError):
    """DESCRIPTOR_ENCRYPTION_KEYS is malformed or lacks the active key."""


def derive_dev_key(secret_key: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=DEV_KEY_SALT,
        iterations=DEV_KEY_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))


@lru_cache(maxsize=8)
def _build_key_ring(keys_config: str, active_key_id: str, secret_key: str) -> dict[str, Fernet]:
    if not keys_config.strip():
        return {active_key_id: Fernet(derive_dev_key(secret_key))}

    ring: dict[str, Fernet] = {}
    for entry in keys_config.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key_id, sep, key = entry.partition(":")
        if not sep or not key_id.strip() or not key.strip():
            raise DescriptorKeyConfigError("DESCRIPTOR_ENCRYPTION_KEYS entries must look like '<id>:<key>'")
        try:
            ring[key_id.strip()] = Fernet(key.strip().encode("ascii"))
        except ValueError:
            raise DescriptorKeyConfigError(f"Invalid Fernet key for key id {key_id.strip()!r}") from None

    if active_key_id not in ring:
        raise DescriptorKeyConfigError(f"Active key id {active_key_id!r} is not configured")
    return ring


def get_key_ring() -> tuple[dict[str, Fernet], str]:
    """Key ring for the current app plus the id used for new ciphertexts."""
    config = current_app.config
    active_key_id = config.get("DESCRIPTOR_ACTIVE_KEY_ID", "v1")
    ring = _build_key_ring(
        config.get("DESCRIPTOR_ENCRYPTION_KEYS", "") or "",
        active_key_id,
        config["SECRET_KEY"],
    )
    return ring, active_key_id


def encrypt_descriptor(values: list[float]) -> tuple[str, str]:
    """Returns (ciphertext, key_id)."""
    ring, key_id = get_key_ring()
    payload = json.dumps([float(v) for v in values], separators=(",", ":"))
    blob = ring[key_id].encrypt(payload.encode("utf-8"))
    return blob.decode("ascii"), key_id


def decrypt_descriptor(blob: str, key_id: str) -> list[float]:
    """
    Reverse encrypt_descriptor().

    Raises DescriptorDecryptionError for an unknown key id, a tampered or
    foreign token, or plaintext that is not a list of finite numbers.
    """
    ring, _ = get_key_ring()
    fernet = ring.get(key_id)
    if fernet is None:
        raise DescriptorDecryptionError(f"Unknown descriptor key id {key_id!r}")

    try:
        plaintext = fernet.decrypt(blob.encode("ascii"))
    except (InvalidToken, UnicodeEncodeError, AttributeError):
        raise DescriptorDecryptionError("Descriptor ciphertext failed authentication") from None

    try:
        values = json.loads(plaintext)
    except ValueError:
        raise DescriptorDecryptionError("Descriptor plaintext is not valid JSON") from None

    if not isinstance(values, list) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v) for v in values
    ):
        raise DescriptorDecryptionError("Descriptor plaintext is not a numeric vector")

    return [float(v) for v in values]
