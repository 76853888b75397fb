"""
Vault Errors: Exception hierarchy for sealing, opening and storing records.

Every failure inside the vault is converted to one of these types at the
component boundary. An expired slot is a normal ``load()`` outcome, not
an error.
"""


class VaultError(Exception):
    """Base exception for all vault operations."""


class KeyDerivationError(VaultError):
    """The symmetric key could not be derived. Fatal at startup."""


class EncryptionError(VaultError):
    """Random source or cipher failure while sealing a record."""


class DecryptionError(VaultError):
    """Malformed IV, invalid padding, or plaintext that is not a record."""


class StoreReadError(VaultError):
    """The persisted slot is missing or unparsable."""


class RecordError(VaultError, ValueError):
    """Invalid input to save: not a serializable mapping, or TTL out of range."""


class StoreWriteError(VaultError):
    """The slot could not be written. Retryable server error."""
