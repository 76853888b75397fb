"""
Encryption Engine: seal and open records with AES-256-CBC.

A sealed bundle is ``{ciphertext, iv}``. The IV is 16 fresh random bytes per
seal; the plaintext is a versioned record frame padded with PKCS7.

Security Note:
    Never log plaintext, ciphertext or key material. Only sizes.
"""
import os
import re
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import VaultConfig
from .crypto import SecretKey, derive_key, deserialize_record, serialize_record
from .errors import DecryptionError, EncryptionError

logger = logging.getLogger("formfill.vault")

IV_SIZE = 16  # 128-bit, one AES block
BLOCK_BITS = 128

_HEX_PATTERN = re.compile(r"(?:[0-9a-fA-F]{2})*")

BytesOrHex = Union[bytes, str]


def _from_hex(value: BytesOrHex, field: str) -> bytes:
    """Decode a hex string (or pass bytes through) for ``open``."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str) or not _HEX_PATTERN.fullmatch(value):
        raise DecryptionError(f"{field} is not a valid hex string")
    return bytes.fromhex(value)


@dataclass(frozen=True)
class SealedBundle:
    """Ciphertext and the IV it was sealed with."""

    ciphertext: bytes
    iv: bytes

    @property
    def ciphertext_hex(self) -> str:
        return self.ciphertext.hex()

    @property
    def iv_hex(self) -> str:
        return self.iv.hex()

    @classmethod
    def from_hex(cls, ciphertext: str, iv: str) -> "SealedBundle":
        """Build a bundle from its hex wire form.

        Raises:
            DecryptionError: If either value is not valid hex.
        """
        return cls(
            ciphertext=_from_hex(ciphertext, "ciphertext"),
            iv=_from_hex(iv, "iv"),
        )


class EncryptionEngine:
    """Seal/open records under one process-wide key.

    The engine holds no mutable state besides the immutable key, so ``seal``
    and ``open`` can be called from many threads at once.
    """

    def __init__(self, key: SecretKey):
        self._key = key

    @classmethod
    def from_config(cls, config: VaultConfig) -> "EncryptionEngine":
        """Derive the key once and build the engine.

        Raises:
            KeyDerivationError: If the key cannot be derived.
        """
        logger.info(
            "Deriving vault key (scrypt n=%d r=%d p=%d)",
            config.scrypt_n, config.scrypt_r, config.scrypt_p,
        )
        key = derive_key(
            config.passphrase.get_secret_value(),
            config.salt,
            n=config.scrypt_n,
            r=config.scrypt_r,
            p=config.scrypt_p,
        )
        return cls(key)

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key.as_bytes()), modes.CBC(iv))

    def seal(self, record: Mapping[str, Any]) -> SealedBundle:
        """Encrypt a record under a fresh IV.

        Args:
            record: Mapping to encrypt.

        Returns:
            SealedBundle with ciphertext and IV.

        Raises:
            RecordError: If the record is not a serializable mapping.
            EncryptionError: If the random source or cipher fails.
        """
        plaintext = serialize_record(record)
        try:
            iv = os.urandom(IV_SIZE)
        except (OSError, NotImplementedError) as err:
            raise EncryptionError("Random source unavailable") from err
        if len(iv) != IV_SIZE:
            raise EncryptionError("Random source returned a short IV")
        try:
            padder = padding.PKCS7(BLOCK_BITS).padder()
            padded = padder.update(plaintext) + padder.finalize()
            encryptor = self._cipher(iv).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except Exception as err:
            raise EncryptionError(f"Encryption error: {err}") from err
        logger.debug("Sealed record: %d byte(s) ciphertext", len(ciphertext))
        return SealedBundle(ciphertext=ciphertext, iv=iv)

    def open(self, ciphertext: BytesOrHex, iv: BytesOrHex) -> dict[str, Any]:
        """Decrypt a sealed bundle back to a record.

        Args:
            ciphertext: Ciphertext bytes or lowercase hex.
            iv: IV bytes or lowercase hex.

        Returns:
            The decrypted record.

        Raises:
            DecryptionError: If the IV or ciphertext is malformed, the padding
                is invalid, or the plaintext is not a record.
        """
        ct = _from_hex(ciphertext, "ciphertext")
        iv_bytes = _from_hex(iv, "iv")
        if len(iv_bytes) != IV_SIZE:
            raise DecryptionError(
                f"Invalid IV size: expected {IV_SIZE}, got {len(iv_bytes)}"
            )
        if not ct or len(ct) % IV_SIZE:
            raise DecryptionError(
                f"Invalid ciphertext length: {len(ct)} byte(s)"
            )
        try:
            decryptor = self._cipher(iv_bytes).decryptor()
            padded = decryptor.update(ct) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            # Same message for every padding failure
            raise DecryptionError("Decryption failed") from None
        return deserialize_record(plaintext)

    def open_bundle(self, bundle: SealedBundle) -> dict[str, Any]:
        return self.open(bundle.ciphertext, bundle.iv)
