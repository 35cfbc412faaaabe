"""
Shieldwatch Raw Transaction Parsing

Extracts Sapling output descriptions from full transaction bytes so that the
authenticated decryption path can recover memos.

Supported encodings:
    v4 (Sapling):  header, group id, transparent, lock/expiry, valueBalance,
                   spends (384 B each), outputs (948 B each), ...
    v5 (NU5):      header, group id, branch id, lock/expiry, transparent,
                   spends (96 B each), outputs (756 B each), ...

Pre-Sapling versions carry no Sapling outputs.
"""

from __future__ import annotations
import logging
import struct
from dataclasses import dataclass
from typing import List

from shieldwatch.constants import (
    HASH_SIZE,
    EPHEMERAL_KEY_SIZE,
    FULL_CIPHERTEXT_SIZE,
    OUT_CIPHERTEXT_SIZE,
    ZKPROOF_SIZE,
    SPEND_V4_SIZE,
    OUTPUT_V4_SIZE,
    SPEND_V5_SIZE,
    OUTPUT_V5_SIZE,
    TX_VERSION_SAPLING,
    TX_VERSION_NU5,
    TX_VERSION_GROUP_SAPLING,
    TX_VERSION_GROUP_NU5,
)
from shieldwatch.core.types import SaplingOutput
from shieldwatch.errors import MalformedTransactionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FullSaplingOutput:
    """Sapling output description with the full note ciphertext."""
    cv: bytes
    cmu: bytes
    ephemeral_key: bytes
    enc_ciphertext: bytes
    out_ciphertext: bytes

    def to_output(self) -> SaplingOutput:
        return SaplingOutput(
            cmu=self.cmu,
            ephemeral_key=self.ephemeral_key,
            ciphertext=self.enc_ciphertext,
        )


class _Reader:
    """Bounds-checked cursor over transaction bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, n: int) -> bytes:
        if n < 0 or self.offset + n > len(self.data):
            raise MalformedTransactionError(
                f"need {n} bytes, {len(self.data) - self.offset} remain",
                self.offset,
            )
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def skip(self, n: int) -> None:
        self.take(n)

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def compact_size(self) -> int:
        """Bitcoin-style CompactSize integer."""
        first = self.take(1)[0]
        if first < 0xFD:
            return first
        if first == 0xFD:
            return struct.unpack("<H", self.take(2))[0]
        if first == 0xFE:
            return struct.unpack("<I", self.take(4))[0]
        return struct.unpack("<Q", self.take(8))[0]

    def count(self, item_size: int) -> int:
        """Read a CompactSize element count that must fit the remaining bytes."""
        start = self.offset
        n = self.compact_size()
        if n * item_size > len(self.data) - self.offset:
            raise MalformedTransactionError(f"count {n} exceeds transaction size", start)
        return n


def _skip_transparent(reader: _Reader) -> None:
    # Inputs: prevout (32 + 4), script, sequence
    for _ in range(reader.count(41)):
        reader.skip(HASH_SIZE + 4)
        reader.skip(reader.compact_size())
        reader.skip(4)

    # Outputs: value, script
    for _ in range(reader.count(9)):
        reader.skip(8)
        reader.skip(reader.compact_size())


def _read_output(reader: _Reader, with_proof: bool) -> FullSaplingOutput:
    cv = reader.take(HASH_SIZE)
    cmu = reader.take(HASH_SIZE)
    ephemeral_key = reader.take(EPHEMERAL_KEY_SIZE)
    enc_ciphertext = reader.take(FULL_CIPHERTEXT_SIZE)
    out_ciphertext = reader.take(OUT_CIPHERTEXT_SIZE)
    if with_proof:
        reader.skip(ZKPROOF_SIZE)
    return FullSaplingOutput(cv, cmu, ephemeral_key, enc_ciphertext, out_ciphertext)


def _parse_v4(reader: _Reader) -> List[FullSaplingOutput]:
    group_id = reader.u32()
    if group_id != TX_VERSION_GROUP_SAPLING:
        raise MalformedTransactionError(f"unexpected v4 version group {group_id:#010x}")

    _skip_transparent(reader)
    reader.skip(4)          # nLockTime
    reader.skip(4)          # nExpiryHeight
    reader.skip(8)          # valueBalanceSapling

    for _ in range(reader.count(SPEND_V4_SIZE)):
        reader.skip(SPEND_V4_SIZE)

    outputs = []
    for _ in range(reader.count(OUTPUT_V4_SIZE)):
        outputs.append(_read_output(reader, with_proof=True))
    return outputs


def _parse_v5(reader: _Reader) -> List[FullSaplingOutput]:
    group_id = reader.u32()
    if group_id != TX_VERSION_GROUP_NU5:
        raise MalformedTransactionError(f"unexpected v5 version group {group_id:#010x}")

    reader.skip(4)          # nConsensusBranchId
    reader.skip(4)          # nLockTime
    reader.skip(4)          # nExpiryHeight
    _skip_transparent(reader)

    for _ in range(reader.count(SPEND_V5_SIZE)):
        reader.skip(SPEND_V5_SIZE)

    outputs = []
    for _ in range(reader.count(OUTPUT_V5_SIZE)):
        outputs.append(_read_output(reader, with_proof=False))
    return outputs


def parse_sapling_outputs(raw: bytes) -> List[FullSaplingOutput]:
    """
    Extract Sapling outputs from a serialized transaction.

    Args:
        raw: Full transaction bytes as returned by GetTransaction

    Returns:
        Outputs in transaction order (empty for pre-Sapling versions)

    Raises:
        MalformedTransactionError: If the bytes are truncated or the
            version group is unknown
    """
    reader = _Reader(raw)
    header = reader.u32()
    overwintered = bool(header >> 31)
    version = header & 0x7FFFFFFF

    if not overwintered or version < TX_VERSION_SAPLING:
        return []

    if version == TX_VERSION_SAPLING:
        outputs = _parse_v4(reader)
    elif version == TX_VERSION_NU5:
        outputs = _parse_v5(reader)
    else:
        raise MalformedTransactionError(f"unsupported transaction version {version}")

    logger.debug(f"Parsed v{version} transaction with {len(outputs)} Sapling outputs")
    return outputs
