"""
ExpiringRecordStore: one encrypted record with an expiry, persisted to disk.

Provides the public API for the single-slot vault:
- ``save(record, ttl_days)``: seal a record and overwrite the slot
- ``load()``: return the record unless the slot is empty, corrupt or expired
- ``clear()``: remove the slot

Slot file format (a single JSON object, all strings)::

    {"encryptedData": "<hex>", "iv": "<hex>",
     "expiryDate": "<ISO-8601>", "createdAt": "<ISO-8601>"}

Security Note:
    Never log the record or its ciphertext. Only paths and timestamps.
"""
import os
import math
import logging
import tempfile
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import DEFAULT_TTL_DAYS, VaultConfig
from .engine import EncryptionEngine
from .errors import DecryptionError, RecordError, StoreReadError, StoreWriteError

logger = logging.getLogger("formfill.vault")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

def format_timestamp(moment: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not an ISO-8601 timestamp.
    """
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def add_calendar_days(
    moment: datetime, days: int, tz: Optional[tzinfo] = None
) -> datetime:
    """Add calendar days on the wall clock of ``tz`` (system local if None).

    Across a DST change the local time of day is kept, so the result can be
    23 or 25 hours per day away from ``moment``.

    Raises:
        RecordError: If the result falls outside the supported date range.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        if tz is None:
            wall = moment.astimezone().replace(tzinfo=None) + timedelta(days=days)
            return wall.astimezone(timezone.utc)
        wall = moment.astimezone(tz).replace(tzinfo=None) + timedelta(days=days)
        return wall.replace(tzinfo=tz).astimezone(timezone.utc)
    except (OverflowError, OSError, ValueError) as err:
        raise RecordError(f"ttl_days out of range: {days}") from err


def resolve_ttl_days(value: Any, default: int = DEFAULT_TTL_DAYS) -> int:
    """Normalize a TTL argument.

    ``None`` and non-numeric values fall back to ``default``. Numbers are
    truncated to whole days and used as given, including zero and negatives.
    """
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning(
            "Ignoring non-numeric ttl_days (%s); using %d",
            type(value).__name__, default,
        )
        return default
    if isinstance(value, float) and not math.isfinite(value):
        logger.warning("Ignoring non-finite ttl_days; using %d", default)
        return default
    return int(value)


# ---------------------------------------------------------------------------
# Slot model and load outcomes
# ---------------------------------------------------------------------------

class StoredRecord(BaseModel):
    """Persisted slot contents, using the wire field names as aliases."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    encrypted_data: str = Field(alias="encryptedData", min_length=1)
    iv: str = Field(min_length=1)
    expiry_date: str = Field(alias="expiryDate")
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @field_validator("expiry_date", "created_at")
    @classmethod
    def validate_timestamp(cls, v: Optional[str]) -> Optional[str]:
        """Reject timestamps that cannot be parsed."""
        if v is not None:
            parse_timestamp(v)
        return v

    @property
    def expires_at(self) -> datetime:
        return parse_timestamp(self.expiry_date)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def bundle(self) -> dict[str, str]:
        """Return the client-facing save output."""
        return {
            "encryptedData": self.encrypted_data,
            "iv": self.iv,
            "expiryDate": self.expiry_date,
        }

    def to_json(self) -> bytes:
        return orjson.dumps(
            self.model_dump(by_alias=True, exclude_none=True),
            option=orjson.OPT_INDENT_2,
        )


class LoadStatus(Enum):
    """Outcome of reading the slot."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    FOUND = "found"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LoadResult:
    """Load outcome; ``record`` is only ever set for FOUND."""

    status: LoadStatus
    record: Optional[dict[str, Any]] = None
    expiry_date: Optional[str] = None

    @classmethod
    def not_found(cls) -> "LoadResult":
        return cls(LoadStatus.NOT_FOUND)

    @classmethod
    def expired(cls, expiry_date: str) -> "LoadResult":
        return cls(LoadStatus.EXPIRED, expiry_date=expiry_date)

    @classmethod
    def found(cls, record: dict[str, Any], expiry_date: str) -> "LoadResult":
        return cls(LoadStatus.FOUND, record=record, expiry_date=expiry_date)

    @property
    def is_found(self) -> bool:
        return self.status is LoadStatus.FOUND

    def as_dict(self) -> dict[str, Any]:
        """Map the outcome to the caller-visible payload."""
        if self.status is LoadStatus.FOUND:
            return {"data": self.record, "expiryDate": self.expiry_date}
        if self.status is LoadStatus.EXPIRED:
            return {"expired": True, "message": "Data expired"}
        return {"error": "No data found"}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ExpiringRecordStore:
    """Single-slot encrypted record store with lazy expiry.

    The slot is a JSON file. ``save`` and ``load`` hold one lock, and writes
    go through a temp file plus ``os.replace``, so a reader never sees
    ciphertext and expiry from two different saves.
    """

    def __init__(
        self,
        engine: EncryptionEngine,
        path: str | os.PathLike,
        default_ttl_days: int = DEFAULT_TTL_DAYS,
        tz: Optional[tzinfo] = None,
        clock: Optional[Clock] = None,
    ):
        self._engine = engine
        self._path = os.fspath(path)
        self._default_ttl = default_ttl_days
        self._tz = tz
        self._clock = clock or utcnow
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: VaultConfig, clock: Optional[Clock] = None
    ) -> "ExpiringRecordStore":
        """Derive the key, build the engine and open the slot.

        This is the constructor to call once at process start.
        """
        engine = EncryptionEngine.from_config(config)
        return cls(
            engine,
            config.storage_path,
            default_ttl_days=config.default_ttl_days,
            tz=config.tzinfo(),
            clock=clock,
        )

    @property
    def path(self) -> str:
        return self._path

    @property
    def engine(self) -> EncryptionEngine:
        return self._engine

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    # ------------------------------------------------------------------
    # Slot I/O
    # ------------------------------------------------------------------

    def _write_slot(self, stored: StoredRecord) -> None:
        """Atomically replace the slot with ``stored``.

        Each write goes to its own temp file in the slot's directory, so
        writers from other store instances or processes never share one.

        Raises:
            StoreWriteError: If the slot cannot be written.
        """
        directory = os.path.dirname(self._path) or "."
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=directory,
                prefix=os.path.basename(self._path) + ".",
                suffix=".tmp",
            )
            with os.fdopen(fd, "wb") as f:
                f.write(stored.to_json())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
            tmp_path = None
        except OSError as err:
            raise StoreWriteError(f"Slot is not writable: {err}") from err
        finally:
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except FileNotFoundError:
                    pass

    def _read_slot(self) -> StoredRecord:
        """Read and validate the slot.

        Raises:
            StoreReadError: If the slot is missing, unreadable or invalid.
        """
        try:
            with open(self._path, "rb") as f:
                raw = f.read()
        except FileNotFoundError as err:
            raise StoreReadError("Slot is empty") from err
        except OSError as err:
            raise StoreReadError(f"Slot is unreadable: {err}") from err
        try:
            return StoredRecord.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as err:
            raise StoreReadError(f"Slot is corrupt: {err}") from err

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save(
        self, record: Mapping[str, Any], ttl_days: Any = None
    ) -> StoredRecord:
        """Seal a record and overwrite the slot.

        Args:
            record: Mapping to store.
            ttl_days: Days until expiry. None or non-numeric values use the
                default; zero or negative values store an expired record.

        Returns:
            The stored record, including its expiry date.

        Raises:
            RecordError: If the record cannot be serialized or the TTL is
                out of range.
            EncryptionError: If sealing fails.
            StoreWriteError: If the slot cannot be written.
        """
        days = resolve_ttl_days(ttl_days, self._default_ttl)
        sealed = self._engine.seal(record)
        now = self._now()
        stored = StoredRecord(
            encrypted_data=sealed.ciphertext_hex,
            iv=sealed.iv_hex,
            expiry_date=format_timestamp(add_calendar_days(now, days, self._tz)),
            created_at=format_timestamp(now),
        )
        with self._lock:
            self._write_slot(stored)
        logger.info(
            "Vault slot saved: path=%s expires=%s", self._path, stored.expiry_date,
        )
        return stored

    def load(self) -> LoadResult:
        """Return the stored record if present and not expired.

        Expiry is checked before decryption. Missing, corrupt and
        undecryptable slots all yield NOT_FOUND.
        """
        with self._lock:
            try:
                stored = self._read_slot()
            except StoreReadError as err:
                if isinstance(err.__cause__, FileNotFoundError):
                    logger.debug("Vault load: no slot at %s", self._path)
                else:
                    logger.warning("Vault load: %s", err)
                return LoadResult.not_found()

        if stored.is_expired(self._now()):
            logger.debug("Vault load: slot expired at %s", stored.expiry_date)
            return LoadResult.expired(stored.expiry_date)

        try:
            record = self._engine.open(stored.encrypted_data, stored.iv)
        except DecryptionError as err:
            logger.error("Vault load: stored record failed to decrypt: %s", err)
            return LoadResult.not_found()
        return LoadResult.found(record, stored.expiry_date)

    def clear(self) -> None:
        """Remove the slot. No-op if it is already empty."""
        with self._lock:
            try:
                os.remove(self._path)
            except FileNotFoundError:
                return
        logger.info("Vault slot cleared: path=%s", self._path)
