"""
Shieldwatch Cryptography
Jubjub arithmetic, note plaintexts and trial decryption.
"""

from shieldwatch.crypto.jubjub import (
    CurvePoint,
    IDENTITY,
    decompress_point,
    compress_point,
    point_add,
    scalar_mult,
)
from shieldwatch.crypto.note import (
    decode_memo,
    encode_memo,
    parse_note_plaintext,
)
from shieldwatch.crypto.note_encryption import (
    DecryptionStatus,
    DecryptionResult,
    kdf_sapling,
    try_decrypt_compact,
    try_decrypt_full,
    try_decrypt_output,
)

__all__ = [
    # Curve
    "CurvePoint",
    "IDENTITY",
    "decompress_point",
    "compress_point",
    "point_add",
    "scalar_mult",
    # Notes
    "decode_memo",
    "encode_memo",
    "parse_note_plaintext",
    # Decryption
    "DecryptionStatus",
    "DecryptionResult",
    "kdf_sapling",
    "try_decrypt_compact",
    "try_decrypt_full",
    "try_decrypt_output",
]
