"""FormFill Vault: encryption-at-rest for a single expiring record.

Security Note (Threat Model):
    The AES-256 key is derived from a static passphrase and lives in process
    memory for the lifetime of the engine. CBC mode gives confidentiality
    only; tampering is detected through padding and record-frame checks, not
    a MAC. A one-key, one-slot design is an accepted limitation.
"""

from .config import VaultConfig
from .crypto import SecretKey, derive_key, serialize_record, deserialize_record
from .engine import EncryptionEngine, SealedBundle
from .errors import (
    VaultError,
    KeyDerivationError,
    EncryptionError,
    DecryptionError,
    StoreReadError,
    StoreWriteError,
    RecordError,
)
from .store import ExpiringRecordStore, StoredRecord, LoadResult, LoadStatus

__all__ = [
    "VaultConfig",
    "SecretKey",
    "derive_key",
    "serialize_record",
    "deserialize_record",
    "EncryptionEngine",
    "SealedBundle",
    "ExpiringRecordStore",
    "StoredRecord",
    "LoadResult",
    "LoadStatus",
    "VaultError",
    "KeyDerivationError",
    "EncryptionError",
    "DecryptionError",
    "StoreReadError",
    "StoreWriteError",
    "RecordError",
]
