"""
Vault Configuration: Key derivation parameters and slot settings.

Reads settings from environment variables:
    FORMFILL_PASSPHRASE = <static passphrase for the AES-256 key>
    FORMFILL_SALT = <salt for scrypt>
    FORMFILL_SCRYPT_N / FORMFILL_SCRYPT_R / FORMFILL_SCRYPT_P = <scrypt cost>
    FORMFILL_STORAGE_PATH = <path of the persisted slot file>
    FORMFILL_DEFAULT_TTL_DAYS = <integer>
    FORMFILL_TIMEZONE = <IANA zone used for calendar-day expiry>

Security Note:
    Never log the passphrase. It is held as a SecretStr so that it is
    redacted from reprs and validation errors.
"""
import os
import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger("formfill.vault")

# Legacy FormFill 0.x key material; slots sealed with it stay decryptable.
LEGACY_PASSPHRASE = "my-secret-key-for-aes-256-encryption"
LEGACY_SALT = "salt"

DEFAULT_TTL_DAYS = 7


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    passphrase: SecretStr = Field(default=SecretStr(LEGACY_PASSPHRASE))
    salt: str = Field(default=LEGACY_SALT, min_length=1)
    scrypt_n: int = Field(default=16384, gt=1)
    scrypt_r: int = Field(default=8, ge=1)
    scrypt_p: int = Field(default=1, ge=1)
    storage_path: str = Field(default="form_data.json", min_length=1)
    default_ttl_days: int = Field(default=DEFAULT_TTL_DAYS)
    timezone: Optional[str] = None

    @field_validator("passphrase")
    @classmethod
    def validate_passphrase(cls, v: SecretStr) -> SecretStr:
        """Reject an empty passphrase."""
        if not v.get_secret_value():
            raise ValueError("passphrase cannot be empty")
        return v

    @field_validator("scrypt_n")
    @classmethod
    def validate_cost(cls, v: int) -> int:
        """scrypt requires N to be a power of two."""
        if v & (v - 1):
            raise ValueError(f"scrypt_n must be a power of two, got {v}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the zone name resolves, so expiry math cannot fail later."""
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise ValueError(f"Unknown timezone: {v}") from err
        return v

    @property
    def uses_legacy_passphrase(self) -> bool:
        return self.passphrase.get_secret_value() == LEGACY_PASSPHRASE

    def tzinfo(self) -> Optional[ZoneInfo]:
        """Return the configured zone, or None for system local time."""
        return ZoneInfo(self.timezone) if self.timezone else None

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables keep their defaults.

        Returns:
            Populated VaultConfig instance.
        """
        mapping = {
            "passphrase": "FORMFILL_PASSPHRASE",
            "salt": "FORMFILL_SALT",
            "scrypt_n": "FORMFILL_SCRYPT_N",
            "scrypt_r": "FORMFILL_SCRYPT_R",
            "scrypt_p": "FORMFILL_SCRYPT_P",
            "storage_path": "FORMFILL_STORAGE_PATH",
            "default_ttl_days": "FORMFILL_DEFAULT_TTL_DAYS",
            "timezone": "FORMFILL_TIMEZONE",
        }
        values = {
            field: os.environ[name]
            for field, name in mapping.items()
            if os.environ.get(name)
        }
        config = cls(**values)
        if config.uses_legacy_passphrase:
            logger.warning(
                "FORMFILL_PASSPHRASE is not set; using the built-in passphrase"
            )
        logger.debug("Vault config loaded: storage_path=%s", config.storage_path)
        return config
