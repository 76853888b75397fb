"""
Vault Crypto Core: Key derivation and record serialization.

- Key derivation: scrypt(passphrase, salt) → 32-byte AES-256 key
- Record frame: [version 1B][orjson, sorted keys] → plaintext for AES-CBC

Security Note:
    Never log the passphrase, the derived key, or record contents.
"""
import hmac
import logging
from collections.abc import Mapping
from typing import Any

import orjson
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import DecryptionError, KeyDerivationError, RecordError

logger = logging.getLogger("formfill.vault")

KEY_LENGTH = 32  # AES-256

FRAME_VERSION = 1
_FRAME_V1 = bytes([FRAME_VERSION])
_LEGACY_FRAME_START = b"{"


class SecretKey:
    """Immutable wrapper around derived key bytes.

    Keeps the raw key out of reprs and logs.
    """

    __slots__ = ("_key",)

    def __init__(self, key: bytes) -> None:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise KeyDerivationError(
                f"Key must be exactly {KEY_LENGTH} bytes"
            )
        object.__setattr__(self, "_key", bytes(key))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("SecretKey is immutable")

    def as_bytes(self) -> bytes:
        return self._key

    def __len__(self) -> int:
        return len(self._key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretKey):
            return NotImplemented
        return hmac.compare_digest(self._key, other._key)

    def __hash__(self) -> int:
        return hash(self._key)

    def __repr__(self) -> str:
        return "SecretKey([REDACTED])"


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    passphrase: str | bytes,
    salt: str | bytes,
    *,
    n: int = 16384,
    r: int = 8,
    p: int = 1,
) -> SecretKey:
    """Derive a 32-byte encryption key using scrypt.

    Deterministic: the same passphrase, salt and cost parameters always
    yield the same key. The defaults match Node's ``crypto.scryptSync``.

    Args:
        passphrase: Static passphrase.
        salt: Salt for the derivation.
        n: CPU/memory cost (power of two).
        r: Block size.
        p: Parallelization.

    Returns:
        Derived SecretKey.

    Raises:
        KeyDerivationError: If the inputs or cost parameters are rejected
            or the derivation runs out of memory.
    """
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if isinstance(salt, str):
        salt = salt.encode("utf-8")
    if not passphrase:
        raise KeyDerivationError("Passphrase cannot be empty")
    try:
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=n, r=r, p=p)
        key = kdf.derive(passphrase)
    except (ValueError, TypeError, MemoryError, UnsupportedAlgorithm) as err:
        raise KeyDerivationError(f"scrypt derivation failed: {err}") from err
    return SecretKey(key)


# ---------------------------------------------------------------------------
# Record serialization
# ---------------------------------------------------------------------------

def serialize_record(record: Mapping[str, Any]) -> bytes:
    """Serialize a record to a versioned, canonical byte frame.

    Keys are sorted so equal mappings always produce equal bytes.

    Args:
        record: Mapping of field name to JSON-compatible value.

    Returns:
        ``0x01`` followed by orjson-encoded bytes.

    Raises:
        RecordError: If record is not a mapping or cannot be encoded.
    """
    if not isinstance(record, Mapping):
        raise RecordError(
            f"Record must be a mapping, got {type(record).__name__}"
        )
    try:
        payload = orjson.dumps(dict(record), option=orjson.OPT_SORT_KEYS)
    except orjson.JSONEncodeError as err:
        raise RecordError(f"Record is not serializable: {err}") from err
    return _FRAME_V1 + payload


def deserialize_record(data: bytes) -> dict[str, Any]:
    """Deserialize a byte frame back to a record.

    Accepts the version 1 frame and the unversioned JSON frame of
    FormFill 0.x slots.

    Args:
        data: Decrypted plaintext.

    Returns:
        The record as a dict.

    Raises:
        DecryptionError: If the frame is unknown or does not hold a JSON object.
    """
    if data[:1] == _FRAME_V1:
        payload = data[1:]
    elif data[:1] == _LEGACY_FRAME_START:
        logger.debug("Decoding legacy unversioned record frame")
        payload = data
    else:
        raise DecryptionError("Unrecognized record frame")
    try:
        parsed = orjson.loads(payload)
    except orjson.JSONDecodeError as err:
        raise DecryptionError("Decrypted data is not a valid record") from err
    if not isinstance(parsed, dict):
        raise DecryptionError("Decrypted data is not a valid record")
    return parsed
