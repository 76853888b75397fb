"""FormFill.

Encrypt a form record at rest, persist it with an expiry, and return it
only while it is still valid.
"""
from .version import __version__
from .vault import (
    VaultConfig,
    EncryptionEngine,
    ExpiringRecordStore,
    LoadStatus,
)

__all__ = (
    "__version__",
    "VaultConfig",
    "EncryptionEngine",
    "ExpiringRecordStore",
    "LoadStatus",
)
