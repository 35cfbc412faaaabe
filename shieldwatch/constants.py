"""
Shieldwatch Constants

All protocol constants defined here for single source of truth.
"""

from typing import Final, Tuple

# ==============================================================================
# JUBJUB CURVE PARAMETERS
# ==============================================================================

# Base field: the BLS12-381 scalar field
JUBJUB_Q: Final[int] = 0x73EDA753299D7D483339D80809A1D80553BDA402FFFE5BFEFFFFFFFF00000001

# Twisted Edwards coefficients: a*x^2 + y^2 = 1 + d*x^2*y^2
JUBJUB_A: Final[int] = JUBJUB_Q - 1             # a = -1
JUBJUB_D: Final[int] = 0x2A9318E74BFA2B48F5FD9207E6BD7FD4292D7F6D37579D2601065FD6D6343EB1

# Prime-order subgroup and cofactor
JUBJUB_R: Final[int] = 0x0E7DB4EA6533AFA906673B0101343B00A6682093CCC81082D0970E5ED6F72CB7
JUBJUB_COFACTOR: Final[int] = 8

POINT_SIZE: Final[int] = 32                     # Compressed point encoding
SCALAR_SIZE: Final[int] = 32

# ==============================================================================
# NOTE ENCRYPTION
# ==============================================================================

IVK_SIZE: Final[int] = 32
EPHEMERAL_KEY_SIZE: Final[int] = 32
SHARED_SECRET_SIZE: Final[int] = 32
SYMMETRIC_KEY_SIZE: Final[int] = 32

KDF_SAPLING_PERSONALIZATION: Final[bytes] = b"Zcash_SaplingKDF"

NOTE_NONCE: Final[bytes] = bytes(12)            # All-zero 96-bit nonce
AEAD_TAG_SIZE: Final[int] = 16
CHACHA20_BLOCK_SIZE: Final[int] = 64

# Note plaintext layout: lead || d || v || rcm || memo
LEAD_BYTE_SIZE: Final[int] = 1
DIVERSIFIER_SIZE: Final[int] = 11
VALUE_SIZE: Final[int] = 8
RCM_SIZE: Final[int] = 32
MEMO_SIZE: Final[int] = 512

NOTE_PLAINTEXT_SIZE: Final[int] = (
    LEAD_BYTE_SIZE + DIVERSIFIER_SIZE + VALUE_SIZE + RCM_SIZE + MEMO_SIZE
)                                               # 564
COMPACT_CIPHERTEXT_SIZE: Final[int] = 52
FULL_CIPHERTEXT_SIZE: Final[int] = NOTE_PLAINTEXT_SIZE + AEAD_TAG_SIZE   # 580
OUT_CIPHERTEXT_SIZE: Final[int] = 80

# Pre-ZIP-212 and post-ZIP-212 note versions
NOTE_LEAD_BYTES: Final[Tuple[int, ...]] = (0x01, 0x02)

# Memo conventions
MEMO_NO_TEXT_MARKER: Final[int] = 0xF6
MEMO_UNAVAILABLE_TEXT: Final[str] = (
    "[Memo not available in compact block - need full transaction]"
)

# ==============================================================================
# TRANSACTION ENCODING
# ==============================================================================

TX_VERSION_SAPLING: Final[int] = 4
TX_VERSION_NU5: Final[int] = 5
TX_VERSION_GROUP_SAPLING: Final[int] = 0x892F2085
TX_VERSION_GROUP_NU5: Final[int] = 0x26A7270A

SPEND_V4_SIZE: Final[int] = 384                 # cv, anchor, nf, rk, proof, sig
OUTPUT_V4_SIZE: Final[int] = 948                # cv, cmu, epk, enc, out, proof
SPEND_V5_SIZE: Final[int] = 96                  # cv, nf, rk
OUTPUT_V5_SIZE: Final[int] = 756                # cv, cmu, epk, enc, out
ZKPROOF_SIZE: Final[int] = 192

HASH_SIZE: Final[int] = 32

# ==============================================================================
# UNITS
# ==============================================================================

ZATOSHI_PER_ZEC: Final[int] = 100_000_000       # Base units per coin
DECIMALS: Final[int] = 8

# ==============================================================================
# NETWORK
# ==============================================================================

NETWORK_MAINNET: Final[str] = "mainnet"
NETWORK_TESTNET: Final[str] = "testnet"
NETWORKS: Final[Tuple[str, ...]] = (NETWORK_MAINNET, NETWORK_TESTNET)

DEFAULT_SERVER_MAINNET: Final[str] = "mainnet.lightwalletd.com:9067"
DEFAULT_SERVER_TESTNET: Final[str] = "testnet.lightwalletd.com:9067"

LOOPBACK_HOSTS: Final[Tuple[str, ...]] = ("localhost",)

RPC_SERVICE: Final[str] = "cash.z.wallet.sdk.rpc.CompactTxStreamer"
RPC_TIMEOUT_SEC: Final[float] = 30.0

# ==============================================================================
# SCANNING
# ==============================================================================

SCAN_BATCH_SIZE: Final[int] = 1000              # Blocks per streaming call
DEFAULT_POLL_INTERVAL_SEC: Final[float] = 60.0
DEFAULT_MAX_CONSECUTIVE_FAILURES: Final[int] = 5
DEFAULT_MIN_AMOUNT_ZATOSHI: Final[int] = 0

PROCESSED_IDS_FILE: Final[str] = "processed_txids.json"

# ==============================================================================
# SERIALIZATION
# ==============================================================================

LITTLE_ENDIAN: Final[str] = "little"
BIG_ENDIAN: Final[str] = "big"
