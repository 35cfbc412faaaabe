"""
Shieldwatch Type Tests
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from shieldwatch.core.block import CompactBlock, CompactTx
from shieldwatch.core.types import (
    IncomingViewingKey,
    SaplingOutput,
    DecryptedNote,
    ShieldedTransaction,
    zatoshi_to_decimal,
    hash_to_txid,
    txid_to_hash,
)
from shieldwatch.errors import (
    ErrorCode,
    InvalidViewingKeyError,
    StreamFailureError,
    WatchCircuitOpenError,
)


class TestIncomingViewingKey:
    """Tests for IncomingViewingKey."""

    def test_key_creation(self):
        """Test key creation from 32 bytes."""
        data = bytes(range(32))
        key = IncomingViewingKey(data)
        assert key.data == data
        assert bytes(key) == data

    def test_key_wrong_length(self):
        """Test key rejects wrong lengths."""
        with pytest.raises(InvalidViewingKeyError):
            IncomingViewingKey(bytes(31))
        with pytest.raises(InvalidViewingKeyError):
            IncomingViewingKey(bytes(33))

    def test_key_from_hex(self):
        """Test key parsing from hex, with and without 0x."""
        hex_str = "ab" * 32
        assert IncomingViewingKey.from_hex(hex_str).data == bytes.fromhex(hex_str)
        assert IncomingViewingKey.from_hex("0x" + hex_str).data == bytes.fromhex(hex_str)

    def test_key_from_bad_hex(self):
        """Test invalid hex raises the key error."""
        with pytest.raises(InvalidViewingKeyError):
            IncomingViewingKey.from_hex("zz" * 32)

    def test_key_repr_redacted(self):
        """Test key material never appears in repr."""
        key = IncomingViewingKey(bytes([0xAB] * 32))
        assert "abab" not in repr(key).lower()
        assert "redacted" in repr(key)


class TestSaplingOutput:
    """Tests for SaplingOutput."""

    def test_compact_detection(self):
        """Test compact vs full ciphertext detection."""
        compact = SaplingOutput(bytes(32), bytes(32), bytes(52))
        full = SaplingOutput(bytes(32), bytes(32), bytes(580))
        assert compact.is_compact
        assert not full.is_compact


class TestDecryptedNote:
    """Tests for DecryptedNote."""

    def test_note_defaults(self):
        """Test default rcm and memo are zero-filled."""
        note = DecryptedNote(diversifier=bytes(11), value=5)
        assert note.rcm == bytes(32)
        assert note.memo == bytes(512)

    def test_note_bad_diversifier(self):
        """Test diversifier length is enforced."""
        with pytest.raises(ValueError):
            DecryptedNote(diversifier=bytes(10), value=5)

    def test_note_value_range(self):
        """Test value must fit in 64 bits."""
        with pytest.raises(ValueError):
            DecryptedNote(diversifier=bytes(11), value=2 ** 64)
        with pytest.raises(ValueError):
            DecryptedNote(diversifier=bytes(11), value=-1)


class TestTxid:
    """Tests for txid rendering."""

    def test_txid_reversed(self):
        """Test txid is the hash in reversed byte order."""
        tx_hash = bytes(range(32))
        txid = hash_to_txid(tx_hash)
        assert txid.startswith("1f1e1d")
        assert txid_to_hash(txid) == tx_hash

    def test_txid_wrong_length(self):
        """Test hash length is enforced."""
        with pytest.raises(ValueError):
            hash_to_txid(bytes(31))


class TestShieldedTransaction:
    """Tests for ShieldedTransaction."""

    def _note(self, value: int = 100_000_000) -> DecryptedNote:
        return DecryptedNote(
            diversifier=bytes(11),
            value=value,
            memo_text="hello",
        )

    def test_from_note(self):
        """Test record built from a note and block metadata."""
        tx = ShieldedTransaction.from_note(
            tx_hash=bytes(range(32)),
            output_index=0,
            block_height=500000,
            block_time=1700000000,
            note=self._note(),
        )
        assert tx.block_height == 500000
        assert tx.timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert tx.amount_base_units == 100_000_000
        assert tx.amount_decimal == Decimal(1)
        assert tx.memo == "hello"
        assert not tx.delivered

    def test_id_by_output_index(self):
        """Test id is txid for output 0 and txid:index otherwise."""
        first = ShieldedTransaction.from_note(bytes(32), 0, 1, 0, self._note())
        second = ShieldedTransaction.from_note(bytes(32), 2, 1, 0, self._note())
        assert first.id == first.txid
        assert second.id == f"{second.txid}:2"
        assert first.id != second.id

    def test_mark_delivered_copies(self):
        """Test delivery marking returns a new record."""
        tx = ShieldedTransaction.from_note(bytes(32), 0, 1, 0, self._note())
        delivered = tx.mark_delivered()
        assert delivered.delivered
        assert not tx.delivered

    def test_with_memo(self):
        """Test memo replacement sets memo_available."""
        tx = ShieldedTransaction.from_note(bytes(32), 0, 1, 0, self._note())
        updated = tx.with_memo("real memo")
        assert updated.memo == "real memo"
        assert updated.memo_available

    def test_to_dict(self):
        """Test dictionary export."""
        tx = ShieldedTransaction.from_note(bytes(32), 0, 7, 0, self._note(150_000_000))
        d = tx.to_dict()
        assert d["id"] == tx.txid
        assert d["block_height"] == 7
        assert d["amount_base_units"] == 150_000_000
        assert d["amount_decimal"] == "1.5"
        assert d["delivered"] is False

    def test_zatoshi_conversion(self):
        """Test base unit conversion is exact."""
        assert zatoshi_to_decimal(1) == Decimal("0.00000001")
        assert zatoshi_to_decimal(123_456_789) == Decimal("1.23456789")


class TestCompactBlock:
    """Tests for CompactBlock."""

    def test_sapling_outputs_order(self):
        """Test outputs are yielded in block order with indices."""
        out_a = SaplingOutput(b"a" * 32, bytes(32), bytes(52))
        out_b = SaplingOutput(b"b" * 32, bytes(32), bytes(52))
        out_c = SaplingOutput(b"c" * 32, bytes(32), bytes(52))
        block = CompactBlock(
            height=10,
            hash=bytes(32),
            prev_hash=bytes(32),
            time=0,
            vtx=(
                CompactTx(index=0, hash=b"1" * 32, outputs=(out_a, out_b)),
                CompactTx(index=1, hash=b"2" * 32, outputs=(out_c,)),
            ),
        )
        yielded = [(tx.hash[:1], i, o.cmu[:1]) for tx, i, o in block.sapling_outputs()]
        assert yielded == [(b"1", 0, b"a"), (b"1", 1, b"b"), (b"2", 0, b"c")]
        assert block.output_count == 3


class TestErrors:
    """Tests for error classes."""

    def test_error_to_dict(self):
        """Test errors export code, name and details."""
        error = StreamFailureError(10, 20, "reset")
        d = error.to_dict()
        assert d["code"] == ErrorCode.STREAM_FAILURE
        assert d["name"] == "STREAM_FAILURE"
        assert d["details"] == {"start_height": 10, "end_height": 20}
        assert error.start_height == 10

    def test_circuit_open(self):
        """Test circuit error carries the failure count."""
        error = WatchCircuitOpenError(5)
        assert error.failures == 5
        assert "5" in error.message
