"""
Shieldwatch Test Fixtures
"""

import asyncio
import hashlib
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pytest
from Crypto.Cipher import ChaCha20_Poly1305

from shieldwatch.constants import (
    JUBJUB_COFACTOR,
    NOTE_NONCE,
    COMPACT_CIPHERTEXT_SIZE,
    RCM_SIZE,
    TX_VERSION_GROUP_SAPLING,
    TX_VERSION_GROUP_NU5,
    ZKPROOF_SIZE,
    SPEND_V4_SIZE,
    SPEND_V5_SIZE,
)
from shieldwatch.core.block import (
    BlockID,
    CompactBlock,
    CompactTx,
    LightdInfo,
    RawTransaction,
)
from shieldwatch.core.types import IncomingViewingKey, SaplingOutput
from shieldwatch.crypto.jubjub import (
    CurvePoint,
    decompress_point,
    compress_point,
    encode_x,
    scalar_mult,
)
from shieldwatch.crypto.note import build_note_plaintext, encode_memo
from shieldwatch.crypto.note_encryption import kdf_sapling
from shieldwatch.node.store import ProcessedIdStore

TEST_ACTIVATION_HEIGHT = 419200
TEST_BLOCK_TIME = 1700000000
INVALID_EPK = b"\xff" * 32      # y >= q, never decodes


def _scalar(n: int) -> bytes:
    return n.to_bytes(32, "little")


def _find_generator() -> CurvePoint:
    """First prime-order point reached by small y encodings."""
    y = 2
    while True:
        point = decompress_point(_scalar(y))
        if point is not None:
            generator = scalar_mult(_scalar(JUBJUB_COFACTOR), point)
            if not generator.is_identity:
                return generator
        y += 1


GENERATOR = _find_generator()


@dataclass
class EncryptedOutput:
    """An output encrypted to a known key, plus the values used."""
    cmu: bytes
    ephemeral_key: bytes
    enc_ciphertext: bytes
    value: int
    memo: str

    @property
    def compact(self) -> SaplingOutput:
        return SaplingOutput(
            cmu=self.cmu,
            ephemeral_key=self.ephemeral_key,
            ciphertext=self.enc_ciphertext[:COMPACT_CIPHERTEXT_SIZE],
        )

    @property
    def full(self) -> SaplingOutput:
        return SaplingOutput(
            cmu=self.cmu,
            ephemeral_key=self.ephemeral_key,
            ciphertext=self.enc_ciphertext,
        )


def encrypt_to_key(
    ivk: IncomingViewingKey,
    value: int,
    memo: str = "",
    esk: Optional[bytes] = None,
    lead_byte: int = 0x02
) -> EncryptedOutput:
    """Encrypt a note the way a sender does: pk_d = [ivk]G, epk = [esk]G."""
    esk = esk or os.urandom(32)
    pk_d = scalar_mult(ivk.data, GENERATOR)
    epk = compress_point(scalar_mult(esk, GENERATOR))
    shared = encode_x(scalar_mult(esk, pk_d))
    key = kdf_sapling(shared, epk)

    plaintext = build_note_plaintext(
        diversifier=bytes(range(11)),
        value=value,
        rcm=os.urandom(RCM_SIZE),
        memo=encode_memo(memo),
        lead_byte=lead_byte,
    )
    cipher = ChaCha20_Poly1305.new(key=key, nonce=NOTE_NONCE)
    ciphertext, tag = cipher.encrypt_and_digest(plaintext)

    cmu = hashlib.sha256(epk + ciphertext[:16]).digest()
    return EncryptedOutput(cmu, epk, ciphertext + tag, value, memo)


def noise_output() -> SaplingOutput:
    """Output whose ephemeral key never decodes, so it never matches."""
    return SaplingOutput(
        cmu=os.urandom(32),
        ephemeral_key=INVALID_EPK,
        ciphertext=os.urandom(COMPACT_CIPHERTEXT_SIZE),
    )


def tx_hash_for(n: int) -> bytes:
    return hashlib.sha256(b"tx" + n.to_bytes(8, "little")).digest()


def make_block(height: int, txs: List[Tuple[bytes, List[SaplingOutput]]]) -> CompactBlock:
    return CompactBlock(
        height=height,
        hash=hashlib.sha256(b"block" + height.to_bytes(8, "little")).digest(),
        prev_hash=hashlib.sha256(b"block" + (height - 1).to_bytes(8, "little")).digest(),
        time=TEST_BLOCK_TIME + height,
        vtx=tuple(
            CompactTx(index=i, hash=tx_hash, outputs=tuple(outputs))
            for i, (tx_hash, outputs) in enumerate(txs)
        ),
    )


def _compact_size(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    return b"\xfd" + n.to_bytes(2, "little")


def build_v4_transaction(outputs: List[EncryptedOutput], spends: int = 0) -> bytes:
    """Serialize a minimal v4 Sapling transaction."""
    data = (4 | (1 << 31)).to_bytes(4, "little")
    data += TX_VERSION_GROUP_SAPLING.to_bytes(4, "little")
    data += _compact_size(0) + _compact_size(0)         # vin, vout
    data += bytes(4) + bytes(4)                         # lock time, expiry
    data += bytes(8)                                    # value balance
    data += _compact_size(spends) + bytes(SPEND_V4_SIZE * spends)
    data += _compact_size(len(outputs))
    for out in outputs:
        data += bytes(32) + out.cmu + out.ephemeral_key + out.enc_ciphertext
        data += bytes(80) + bytes(ZKPROOF_SIZE)
    data += _compact_size(0) + bytes(64)                # joinsplits, binding sig
    return data


def build_v5_transaction(outputs: List[EncryptedOutput], spends: int = 0) -> bytes:
    """Serialize a minimal v5 transaction with Sapling outputs."""
    data = (5 | (1 << 31)).to_bytes(4, "little")
    data += TX_VERSION_GROUP_NU5.to_bytes(4, "little")
    data += bytes(4) + bytes(4) + bytes(4)              # branch, lock, expiry
    data += _compact_size(0) + _compact_size(0)         # vin, vout
    data += _compact_size(spends) + bytes(SPEND_V5_SIZE * spends)
    data += _compact_size(len(outputs))
    for out in outputs:
        data += bytes(32) + out.cmu + out.ephemeral_key + out.enc_ciphertext
        data += bytes(80)
    data += bytes(8)                                    # value balance
    return data


class FakeLightwalletdClient:
    """In-memory stand-in for LightwalletdClient."""

    def __init__(self, activation_height: int = TEST_ACTIVATION_HEIGHT):
        self.address = "fake-lightwalletd:9067"
        self.activation_height = activation_height
        self.tip = activation_height
        self.blocks: Dict[int, CompactBlock] = {}
        self.transactions: Dict[bytes, bytes] = {}

        self.range_calls: List[Tuple[int, int]] = []
        self.transaction_calls = 0
        self.closed = False

        # Failure injection
        self.fail_info = False
        self.fail_tip = False
        self.fail_transaction = False
        self.fail_stream_after: Optional[int] = None
        self.stream_delay = 0.0

    def add_block(self, block: CompactBlock) -> None:
        self.blocks[block.height] = block
        self.tip = max(self.tip, block.height)

    def add_transaction(self, tx_hash: bytes, raw: bytes) -> None:
        self.transactions[tx_hash] = raw

    async def get_lightd_info(self) -> LightdInfo:
        if self.fail_info:
            raise ConnectionError("connection refused")
        return LightdInfo(
            version="test",
            vendor="fake",
            chain_name="main",
            sapling_activation_height=self.activation_height,
            block_height=self.tip,
        )

    async def get_latest_block(self) -> BlockID:
        if self.fail_tip:
            raise ConnectionError("tip unavailable")
        return BlockID(height=self.tip)

    async def get_block(self, height: int) -> CompactBlock:
        return self.blocks[height]

    async def get_block_range(self, start_height: int, end_height: int):
        self.range_calls.append((start_height, end_height))
        if self.stream_delay:
            await asyncio.sleep(self.stream_delay)
        delivered = 0
        for height in range(start_height, end_height + 1):
            if self.fail_stream_after is not None and delivered >= self.fail_stream_after:
                raise ConnectionError("stream reset")
            delivered += 1
            if height in self.blocks:
                yield self.blocks[height]

    async def get_transaction(self, tx_hash: bytes) -> RawTransaction:
        self.transaction_calls += 1
        if self.fail_transaction or tx_hash not in self.transactions:
            raise ConnectionError("transaction not found")
        return RawTransaction(data=self.transactions[tx_hash], height=0)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def viewing_key() -> IncomingViewingKey:
    """Deterministic incoming viewing key."""
    return IncomingViewingKey(bytes([(i * 7 + 3) % 256 for i in range(31)] + [0x01]))


@pytest.fixture
def other_viewing_key() -> IncomingViewingKey:
    """A second, unrelated key."""
    return IncomingViewingKey(bytes([(i * 13 + 5) % 256 for i in range(31)] + [0x02]))


@pytest.fixture
def fake_client() -> FakeLightwalletdClient:
    return FakeLightwalletdClient()


@pytest.fixture
def store(tmp_path) -> ProcessedIdStore:
    """Empty processed-id store in a temp directory."""
    return ProcessedIdStore(tmp_path / "processed_txids.json")
