"""
Shieldwatch Core Types

Viewing key, shielded outputs, decrypted notes and the transaction records
handed to the downstream handler.

All multi-byte integers are LITTLE-ENDIAN unless noted.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal

from shieldwatch.constants import (
    IVK_SIZE,
    FULL_CIPHERTEXT_SIZE,
    DIVERSIFIER_SIZE,
    RCM_SIZE,
    MEMO_SIZE,
    HASH_SIZE,
    ZATOSHI_PER_ZEC,
)
from shieldwatch.errors import InvalidViewingKeyError


@dataclass(frozen=True, slots=True)
class IncomingViewingKey:
    """
    Sapling incoming viewing key.

    SIZE: 32 bytes
    NOTE: Decrypts incoming notes only. Carries no spend authority.
    """
    data: bytes

    def __post_init__(self):
        if not isinstance(self.data, (bytes, bytearray)):
            raise InvalidViewingKeyError("key must be bytes")
        if len(self.data) != IVK_SIZE:
            raise InvalidViewingKeyError(
                f"expected {IVK_SIZE} bytes, got {len(self.data)}"
            )
        object.__setattr__(self, "data", bytes(self.data))

    def __bytes__(self) -> bytes:
        return self.data

    def __repr__(self) -> str:
        # Never expose key material
        return "IncomingViewingKey(data=<redacted>)"

    @classmethod
    def from_hex(cls, hex_string: str) -> IncomingViewingKey:
        """Parse a 64-character hex string."""
        text = hex_string.strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        try:
            data = bytes.fromhex(text)
        except ValueError:
            raise InvalidViewingKeyError("not a hex string") from None
        return cls(data)


@dataclass(frozen=True, slots=True)
class SaplingOutput:
    """
    One shielded output as received from the wire.

    ciphertext is either the 52-byte compact prefix or the full
    580-byte enc_ciphertext.
    """
    cmu: bytes
    ephemeral_key: bytes
    ciphertext: bytes

    @property
    def is_compact(self) -> bool:
        return len(self.ciphertext) != FULL_CIPHERTEXT_SIZE

    def __repr__(self) -> str:
        return (
            f"SaplingOutput(cmu={self.cmu.hex()[:16]}..., "
            f"epk={self.ephemeral_key.hex()[:16]}..., ct={len(self.ciphertext)}B)"
        )


@dataclass(frozen=True, slots=True)
class DecryptedNote:
    """
    Note recovered by trial decryption.

    A note decrypted from compact ciphertext has a correct value and
    diversifier but zero-filled rcm and memo, and memo_available is False.
    """
    diversifier: bytes
    value: int
    rcm: bytes = field(default_factory=lambda: bytes(RCM_SIZE))
    memo: bytes = field(default_factory=lambda: bytes(MEMO_SIZE))
    memo_text: str = ""
    memo_available: bool = True
    lead_byte: int = 0x02

    def __post_init__(self):
        if len(self.diversifier) != DIVERSIFIER_SIZE:
            raise ValueError(
                f"diversifier must be {DIVERSIFIER_SIZE} bytes, got {len(self.diversifier)}"
            )
        if not 0 <= self.value < 2 ** 64:
            raise ValueError(f"value out of range: {self.value}")
        if len(self.rcm) != RCM_SIZE:
            raise ValueError(f"rcm must be {RCM_SIZE} bytes, got {len(self.rcm)}")
        if len(self.memo) != MEMO_SIZE:
            raise ValueError(f"memo must be {MEMO_SIZE} bytes, got {len(self.memo)}")

    def __repr__(self) -> str:
        return (
            f"DecryptedNote(value={self.value}, "
            f"d={self.diversifier.hex()}, memo_available={self.memo_available})"
        )


def zatoshi_to_decimal(value: int) -> Decimal:
    """Convert base units to a coin amount."""
    return Decimal(value) / Decimal(ZATOSHI_PER_ZEC)


def hash_to_txid(tx_hash: bytes) -> str:
    """Render a transaction hash in display (reversed) byte order."""
    if len(tx_hash) != HASH_SIZE:
        raise ValueError(f"tx hash must be {HASH_SIZE} bytes, got {len(tx_hash)}")
    return tx_hash[::-1].hex()


def txid_to_hash(txid: str) -> bytes:
    """Inverse of hash_to_txid."""
    data = bytes.fromhex(txid)
    if len(data) != HASH_SIZE:
        raise ValueError(f"txid must be {HASH_SIZE} bytes, got {len(data)}")
    return data[::-1]


@dataclass(frozen=True, slots=True)
class ShieldedTransaction:
    """
    A payment to the viewing key, ready for the downstream handler.

    Immutable. Delivery produces a copy with delivered=True.
    """
    txid: str
    output_index: int
    block_height: int
    timestamp: datetime
    amount_base_units: int
    memo: str
    memo_available: bool = False
    delivered: bool = False

    @property
    def id(self) -> str:
        """
        Stable delivery identifier.

        The txid alone for output 0, txid:index for later outputs so that
        two outputs of one transaction are delivered separately.
        """
        if self.output_index == 0:
            return self.txid
        return f"{self.txid}:{self.output_index}"

    @property
    def amount_decimal(self) -> Decimal:
        return zatoshi_to_decimal(self.amount_base_units)

    @property
    def tx_hash(self) -> bytes:
        return txid_to_hash(self.txid)

    def mark_delivered(self) -> ShieldedTransaction:
        return replace(self, delivered=True)

    def with_memo(self, memo: str) -> ShieldedTransaction:
        return replace(self, memo=memo, memo_available=True)

    @classmethod
    def from_note(
        cls,
        tx_hash: bytes,
        output_index: int,
        block_height: int,
        block_time: int,
        note: DecryptedNote
    ) -> ShieldedTransaction:
        """Build a record from a decrypted note and its block metadata."""
        return cls(
            txid=hash_to_txid(tx_hash),
            output_index=output_index,
            block_height=block_height,
            timestamp=datetime.fromtimestamp(block_time, tz=timezone.utc),
            amount_base_units=note.value,
            memo=note.memo_text,
            memo_available=note.memo_available,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "txid": self.txid,
            "output_index": self.output_index,
            "block_height": self.block_height,
            "timestamp": self.timestamp.isoformat(),
            "amount_base_units": self.amount_base_units,
            "amount_decimal": str(self.amount_decimal),
            "memo": self.memo,
            "memo_available": self.memo_available,
            "delivered": self.delivered,
        }

