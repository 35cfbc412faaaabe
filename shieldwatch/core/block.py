"""
Shieldwatch Compact Block Structures

Condensed per-block data relayed by a lightwalletd server.

Orchard actions are carried in the model but are not trial-decrypted.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterator, Tuple

from shieldwatch.core.types import SaplingOutput


@dataclass(frozen=True, slots=True)
class CompactSpend:
    """Sapling spend: nullifier only."""
    nf: bytes


@dataclass(frozen=True, slots=True)
class CompactOrchardAction:
    """Orchard action (second output family, inert here)."""
    nullifier: bytes
    cmx: bytes
    ephemeral_key: bytes
    ciphertext: bytes


@dataclass(frozen=True, slots=True)
class CompactTx:
    """Compact transaction."""
    index: int
    hash: bytes
    fee: int = 0
    spends: Tuple[CompactSpend, ...] = ()
    outputs: Tuple[SaplingOutput, ...] = ()
    actions: Tuple[CompactOrchardAction, ...] = ()

    @classmethod
    def from_proto(cls, msg: Any) -> CompactTx:
        return cls(
            index=msg.index,
            hash=bytes(msg.hash),
            fee=msg.fee,
            spends=tuple(CompactSpend(nf=bytes(s.nf)) for s in msg.spends),
            outputs=tuple(
                SaplingOutput(
                    cmu=bytes(o.cmu),
                    ephemeral_key=bytes(o.ephemeralKey),
                    ciphertext=bytes(o.ciphertext),
                )
                for o in msg.outputs
            ),
            actions=tuple(
                CompactOrchardAction(
                    nullifier=bytes(a.nullifier),
                    cmx=bytes(a.cmx),
                    ephemeral_key=bytes(a.ephemeralKey),
                    ciphertext=bytes(a.ciphertext),
                )
                for a in msg.actions
            ),
        )


@dataclass(frozen=True, slots=True)
class CompactBlock:
    """
    Compact block.

    hash and prev_hash are in internal byte order.
    """
    height: int
    hash: bytes
    prev_hash: bytes
    time: int
    vtx: Tuple[CompactTx, ...] = ()
    proto_version: int = 1

    def __repr__(self) -> str:
        return f"CompactBlock(height={self.height}, txs={len(self.vtx)})"

    @property
    def output_count(self) -> int:
        return sum(len(tx.outputs) for tx in self.vtx)

    def sapling_outputs(self) -> Iterator[Tuple[CompactTx, int, SaplingOutput]]:
        """Yield (tx, output_index, output) in block order."""
        for tx in self.vtx:
            for index, output in enumerate(tx.outputs):
                yield tx, index, output

    @classmethod
    def from_proto(cls, msg: Any) -> CompactBlock:
        return cls(
            height=msg.height,
            hash=bytes(msg.hash),
            prev_hash=bytes(msg.prevHash),
            time=msg.time,
            vtx=tuple(CompactTx.from_proto(tx) for tx in msg.vtx),
            proto_version=msg.protoVersion,
        )


@dataclass
class BlockID:
    """Height and hash of a block."""
    height: int
    hash: bytes = b""


@dataclass
class LightdInfo:
    """Server description returned by GetLightdInfo."""
    version: str = ""
    vendor: str = ""
    chain_name: str = ""
    sapling_activation_height: int = 0
    block_height: int = 0
    estimated_height: int = 0
    consensus_branch_id: str = ""

    @classmethod
    def from_proto(cls, msg: Any) -> LightdInfo:
        return cls(
            version=msg.version,
            vendor=msg.vendor,
            chain_name=msg.chainName,
            sapling_activation_height=msg.saplingActivationHeight,
            block_height=msg.blockHeight,
            estimated_height=msg.estimatedHeight,
            consensus_branch_id=msg.consensusBranchId,
        )


@dataclass
class RawTransaction:
    """Full transaction bytes and the height it was mined at."""
    data: bytes
    height: int = 0
