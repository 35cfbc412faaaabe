"""
Shieldwatch Core Data Structures
"""

from shieldwatch.core.types import (
    IncomingViewingKey,
    SaplingOutput,
    DecryptedNote,
    ShieldedTransaction,
    zatoshi_to_decimal,
    hash_to_txid,
    txid_to_hash,
)
from shieldwatch.core.block import (
    CompactSpend,
    CompactOrchardAction,
    CompactTx,
    CompactBlock,
    BlockID,
    LightdInfo,
    RawTransaction,
)

__all__ = [
    # Types
    "IncomingViewingKey",
    "SaplingOutput",
    "DecryptedNote",
    "ShieldedTransaction",
    "zatoshi_to_decimal",
    "hash_to_txid",
    "txid_to_hash",
    # Blocks
    "CompactSpend",
    "CompactOrchardAction",
    "CompactTx",
    "CompactBlock",
    "BlockID",
    "LightdInfo",
    "RawTransaction",
]
