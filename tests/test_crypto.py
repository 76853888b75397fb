"""
Tests for key derivation and the record frame.
"""
import pytest

from formfill.vault import (
    DecryptionError,
    KeyDerivationError,
    RecordError,
    SecretKey,
    derive_key,
    deserialize_record,
    serialize_record,
)


class TestDeriveKey:
    """Tests for scrypt key derivation."""

    def test_known_answer_vector(self):
        """First 32 bytes of the RFC 7914 scrypt test vector."""
        key = derive_key("password", "NaCl", n=1024, r=8, p=16)
        assert key.as_bytes().hex() == (
            "fdbabe1c9d3472007856e7190d01e9fe"
            "7c6ad7cbc8237830e77376634b373162"
        )

    def test_deterministic(self):
        """Same passphrase and salt always give the same key."""
        first = derive_key("passphrase", "salt", n=1024)
        second = derive_key(b"passphrase", b"salt", n=1024)
        assert first == second
        assert first.as_bytes() == second.as_bytes()

    def test_key_length(self, key):
        assert len(key) == 32

    def test_salt_changes_key(self):
        assert derive_key("pw", "a", n=1024) != derive_key("pw", "b", n=1024)

    def test_empty_passphrase_rejected(self):
        with pytest.raises(KeyDerivationError):
            derive_key("", "salt")

    def test_invalid_cost_rejected(self):
        """N must be a power of two."""
        with pytest.raises(KeyDerivationError):
            derive_key("pw", "salt", n=1000)


class TestSecretKey:
    """Tests for the SecretKey wrapper."""

    def test_repr_is_redacted(self, key):
        assert repr(key) == "SecretKey([REDACTED])"
        assert key.as_bytes().hex() not in repr(key)

    def test_immutable(self, key):
        with pytest.raises(AttributeError):
            key._key = b"\x00" * 32

    def test_wrong_length_rejected(self):
        with pytest.raises(KeyDerivationError):
            SecretKey(b"short")


class TestRecordFrame:
    """Tests for record serialization."""

    def test_frame_is_versioned(self):
        data = serialize_record({"a": 1})
        assert data[:1] == b"\x01"
        assert data[1:] == b'{"a":1}'

    def test_key_order_is_canonical(self):
        """Equal mappings serialize to equal bytes regardless of order."""
        assert serialize_record({"b": 1, "a": 2}) == serialize_record({"a": 2, "b": 1})

    def test_round_trip(self):
        record = {"firstName": "Zoë", "email": "zoe@example.com", "age": 3}
        assert deserialize_record(serialize_record(record)) == record

    def test_empty_record(self):
        assert deserialize_record(serialize_record({})) == {}

    def test_legacy_frame(self):
        """Bare JSON objects decode for compatibility with stored data."""
        assert deserialize_record(b'{"firstName":"Ann"}') == {"firstName": "Ann"}

    def test_not_a_mapping(self):
        with pytest.raises(RecordError):
            serialize_record(["firstName", "Ann"])

    def test_non_string_keys(self):
        with pytest.raises(RecordError):
            serialize_record({1: "one"})

    def test_unsupported_value(self):
        with pytest.raises(RecordError):
            serialize_record({"value": object()})

    def test_record_error_is_value_error(self):
        with pytest.raises(ValueError):
            serialize_record("not a record")

    @pytest.mark.parametrize("data", [
        b"",
        b"\x02{}",
        b"\x01not json",
        b"\x01[1, 2]",
        b"\x01\xff\xfe",
        b"{broken",
    ])
    def test_invalid_frames(self, data):
        with pytest.raises(DecryptionError):
            deserialize_record(data)
