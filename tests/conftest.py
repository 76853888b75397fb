"""
Pytest configuration and fixtures for vault tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from formfill.vault import EncryptionEngine, ExpiringRecordStore, derive_key
from formfill.vault.config import LEGACY_PASSPHRASE, LEGACY_SALT


class FakeClock:
    """Controllable clock; each call moves forward by ``step``."""

    def __init__(self, start: datetime, step: timedelta = timedelta(0)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="session")
def key():
    """Key derived with the default passphrase and salt (derived once)."""
    return derive_key(LEGACY_PASSPHRASE, LEGACY_SALT)


@pytest.fixture(scope="session")
def engine(key):
    return EncryptionEngine(key)


@pytest.fixture
def make_clock():
    return FakeClock


@pytest.fixture
def clock():
    return FakeClock(
        datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc),
        step=timedelta(microseconds=1),
    )


@pytest.fixture
def slot_path(tmp_path):
    return tmp_path / "form_data.json"


@pytest.fixture
def store(engine, slot_path, clock):
    """Store backed by a temp file, UTC calendar and a fake clock."""
    return ExpiringRecordStore(
        engine, slot_path, tz=timezone.utc, clock=clock,
    )
