"""
Shieldwatch Note Decryption

Trial decryption of Sapling outputs with an incoming viewing key.

    epk      = decompress(ephemeral_key)
    shared   = x([ivk] * epk) as 32 LE bytes
    key      = BLAKE2b-256("Zcash_SaplingKDF", shared || ephemeral_key)
    full     : ChaCha20-Poly1305(key, nonce=0^96) over 580 bytes
    compact  : ChaCha20(key, nonce=0^96, counter=1) over 52 bytes, no tag

The compact path cannot authenticate. A wrong key is rejected only when the
first plaintext byte is not a permitted lead byte, which lets roughly
2 in 256 (about 1 in 128) non-matching outputs through as false matches.
"""

from __future__ import annotations
import hashlib
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from Crypto.Cipher import ChaCha20, ChaCha20_Poly1305

from shieldwatch.constants import (
    SYMMETRIC_KEY_SIZE,
    EPHEMERAL_KEY_SIZE,
    KDF_SAPLING_PERSONALIZATION,
    NOTE_NONCE,
    AEAD_TAG_SIZE,
    CHACHA20_BLOCK_SIZE,
    COMPACT_CIPHERTEXT_SIZE,
    FULL_CIPHERTEXT_SIZE,
    NOTE_LEAD_BYTES,
)
from shieldwatch.core.types import IncomingViewingKey, SaplingOutput, DecryptedNote
from shieldwatch.crypto.jubjub import decompress_point, scalar_mult, encode_x
from shieldwatch.crypto.note import parse_note_plaintext

logger = logging.getLogger(__name__)


class DecryptionStatus(Enum):
    """Outcome of a trial decryption."""
    MATCH = auto()
    NOT_FOR_KEY = auto()
    MALFORMED = auto()


@dataclass(frozen=True, slots=True)
class DecryptionResult:
    """
    Tagged result of a trial decryption.

    NOT_FOR_KEY covers invalid ephemeral keys, failed authentication and
    implausible compact plaintexts. MALFORMED covers inputs too short to
    attempt.
    """
    status: DecryptionStatus
    note: Optional[DecryptedNote] = None
    reason: str = ""

    @property
    def matched(self) -> bool:
        return self.status is DecryptionStatus.MATCH

    @classmethod
    def match(cls, note: DecryptedNote) -> DecryptionResult:
        return cls(DecryptionStatus.MATCH, note)

    @classmethod
    def not_for_key(cls, reason: str) -> DecryptionResult:
        return cls(DecryptionStatus.NOT_FOR_KEY, None, reason)

    @classmethod
    def malformed(cls, reason: str) -> DecryptionResult:
        return cls(DecryptionStatus.MALFORMED, None, reason)


# ==============================================================================
# KEY AGREEMENT AND KDF
# ==============================================================================

def kdf_sapling(shared_secret: bytes, ephemeral_key: bytes) -> bytes:
    """KDF^Sapling: BLAKE2b-256 over shared_secret || ephemeral_key."""
    h = hashlib.blake2b(
        digest_size=SYMMETRIC_KEY_SIZE,
        person=KDF_SAPLING_PERSONALIZATION,
    )
    h.update(shared_secret)
    h.update(ephemeral_key)
    return h.digest()


def derive_shared_secret(ivk: IncomingViewingKey, ephemeral_key: bytes) -> Optional[bytes]:
    """
    Compute x([ivk] * epk) as 32 little-endian bytes.

    Returns:
        The shared secret, or None if ephemeral_key is not a valid point
    """
    epk = decompress_point(ephemeral_key)
    if epk is None:
        return None
    return encode_x(scalar_mult(ivk.data, epk))


def derive_symmetric_key(ivk: IncomingViewingKey, ephemeral_key: bytes) -> Optional[bytes]:
    shared = derive_shared_secret(ivk, ephemeral_key)
    if shared is None:
        return None
    return kdf_sapling(shared, ephemeral_key)


# ==============================================================================
# SYMMETRIC DECRYPTION
# ==============================================================================

def decrypt_compact_ciphertext(key: bytes, ciphertext: bytes) -> Optional[bytes]:
    """
    Unauthenticated ChaCha20 decryption of a compact ciphertext.

    The keystream starts at block 1, matching the AEAD encryption of the
    full ciphertext. Only the lead byte is checked.

    Returns:
        The 52-byte plaintext prefix, or None if the lead byte is not permitted
    """
    if len(ciphertext) < COMPACT_CIPHERTEXT_SIZE:
        return None

    cipher = ChaCha20.new(key=key, nonce=NOTE_NONCE)
    cipher.seek(CHACHA20_BLOCK_SIZE)
    plaintext = cipher.decrypt(ciphertext[:COMPACT_CIPHERTEXT_SIZE])

    if plaintext[0] not in NOTE_LEAD_BYTES:
        return None
    return plaintext


def decrypt_full_ciphertext(key: bytes, ciphertext: bytes) -> Optional[bytes]:
    """
    Authenticated ChaCha20-Poly1305 decryption of a 580-byte ciphertext.

    Returns:
        The 564-byte note plaintext, or None on authentication failure
    """
    if len(ciphertext) != FULL_CIPHERTEXT_SIZE:
        return None

    cipher = ChaCha20_Poly1305.new(key=key, nonce=NOTE_NONCE)
    body = ciphertext[:-AEAD_TAG_SIZE]
    tag = ciphertext[-AEAD_TAG_SIZE:]
    try:
        return cipher.decrypt_and_verify(body, tag)
    except ValueError:
        return None


# ==============================================================================
# TRIAL DECRYPTION
# ==============================================================================

def _check_lengths(ephemeral_key: bytes, ciphertext: bytes) -> Optional[str]:
    if len(ephemeral_key) != EPHEMERAL_KEY_SIZE:
        return f"ephemeral key is {len(ephemeral_key)} bytes"
    if len(ciphertext) < COMPACT_CIPHERTEXT_SIZE:
        return f"ciphertext is {len(ciphertext)} bytes"
    return None


def try_decrypt_compact(
    ephemeral_key: bytes,
    ciphertext: bytes,
    ivk: IncomingViewingKey
) -> DecryptionResult:
    """Trial-decrypt the compact ciphertext of one output."""
    problem = _check_lengths(ephemeral_key, ciphertext)
    if problem:
        return DecryptionResult.malformed(problem)

    try:
        key = derive_symmetric_key(ivk, ephemeral_key)
        if key is None:
            return DecryptionResult.not_for_key("invalid ephemeral key")

        plaintext = decrypt_compact_ciphertext(key, ciphertext)
        if plaintext is None:
            return DecryptionResult.not_for_key("implausible lead byte")

        note = parse_note_plaintext(plaintext)
    except ValueError as e:
        logger.debug(f"Compact trial decryption rejected: {e}")
        return DecryptionResult.not_for_key(str(e))

    if note is None:
        return DecryptionResult.malformed("plaintext too short")
    return DecryptionResult.match(note)


def try_decrypt_full(
    ephemeral_key: bytes,
    enc_ciphertext: bytes,
    ivk: IncomingViewingKey
) -> DecryptionResult:
    """Trial-decrypt a full 580-byte enc_ciphertext with authentication."""
    problem = _check_lengths(ephemeral_key, enc_ciphertext)
    if problem:
        return DecryptionResult.malformed(problem)
    if len(enc_ciphertext) != FULL_CIPHERTEXT_SIZE:
        return DecryptionResult.malformed(
            f"full ciphertext must be {FULL_CIPHERTEXT_SIZE} bytes, "
            f"got {len(enc_ciphertext)}"
        )

    try:
        key = derive_symmetric_key(ivk, ephemeral_key)
        if key is None:
            return DecryptionResult.not_for_key("invalid ephemeral key")

        plaintext = decrypt_full_ciphertext(key, enc_ciphertext)
        if plaintext is None:
            return DecryptionResult.not_for_key("authentication failed")

        note = parse_note_plaintext(plaintext)
    except ValueError as e:
        logger.debug(f"Full trial decryption rejected: {e}")
        return DecryptionResult.not_for_key(str(e))

    if note is None:
        return DecryptionResult.malformed("plaintext too short")
    return DecryptionResult.match(note)


def try_decrypt_output(output: SaplingOutput, ivk: IncomingViewingKey) -> DecryptionResult:
    """
    Trial-decrypt one output, choosing the path by ciphertext length.

    580 bytes takes the authenticated path. Anything from 52 bytes up takes
    the compact path over its first 52 bytes. Shorter input is MALFORMED.
    """
    if len(output.ciphertext) == FULL_CIPHERTEXT_SIZE:
        return try_decrypt_full(output.ephemeral_key, output.ciphertext, ivk)
    return try_decrypt_compact(output.ephemeral_key, output.ciphertext, ivk)
