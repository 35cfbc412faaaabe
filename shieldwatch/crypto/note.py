"""
Shieldwatch Note Plaintext

Parsing of decrypted Sapling note plaintexts and memo text handling.

Layout (564 bytes):
    lead_byte (1) || diversifier (11) || value (8, LE) || rcm (32) || memo (512)

Compact ciphertext only yields the first 52 bytes. Notes parsed from it keep
the lead byte, diversifier and value; rcm and memo are zero-filled. Such
notes are value-complete but carry no memo.
"""

from __future__ import annotations
from typing import Optional

from shieldwatch.constants import (
    LEAD_BYTE_SIZE,
    DIVERSIFIER_SIZE,
    VALUE_SIZE,
    RCM_SIZE,
    MEMO_SIZE,
    NOTE_PLAINTEXT_SIZE,
    COMPACT_CIPHERTEXT_SIZE,
    MEMO_NO_TEXT_MARKER,
    MEMO_UNAVAILABLE_TEXT,
    LITTLE_ENDIAN,
)
from shieldwatch.core.types import DecryptedNote

_DIVERSIFIER_OFFSET = LEAD_BYTE_SIZE
_VALUE_OFFSET = _DIVERSIFIER_OFFSET + DIVERSIFIER_SIZE
_RCM_OFFSET = _VALUE_OFFSET + VALUE_SIZE
_MEMO_OFFSET = _RCM_OFFSET + RCM_SIZE


def decode_memo(memo: bytes) -> str:
    """
    Decode a memo field as text.

    A leading 0xF6 marker is skipped. Text runs to the first zero byte
    (or the end of the field), is decoded as UTF-8 and stripped.
    """
    start = 1 if memo[:1] == bytes([MEMO_NO_TEXT_MARKER]) else 0
    end = memo.find(b"\x00", start)
    if end == -1:
        end = len(memo)
    return memo[start:end].decode("utf-8", errors="replace").strip()


def encode_memo(text: str) -> bytes:
    """
    Encode text into a 512-byte memo field.

    Empty text encodes as the canonical "no memo" field (0xF6 then zeros).

    Raises:
        ValueError: If the text contains NUL or does not fit
    """
    if "\x00" in text:
        raise ValueError("memo text cannot contain NUL characters")

    data = text.encode("utf-8")
    if len(data) > MEMO_SIZE:
        raise ValueError(f"memo text is {len(data)} bytes, maximum is {MEMO_SIZE}")

    if not data:
        return bytes([MEMO_NO_TEXT_MARKER]) + bytes(MEMO_SIZE - 1)

    return data + bytes(MEMO_SIZE - len(data))


def parse_note_plaintext(plaintext: bytes) -> Optional[DecryptedNote]:
    """
    Parse a decrypted note plaintext.

    Args:
        plaintext: 564 bytes from the full path or 52 bytes from the compact path

    Returns:
        DecryptedNote, or None if the plaintext is shorter than the compact size
    """
    if len(plaintext) < COMPACT_CIPHERTEXT_SIZE:
        return None

    lead_byte = plaintext[0]
    diversifier = plaintext[_DIVERSIFIER_OFFSET:_VALUE_OFFSET]
    value = int.from_bytes(plaintext[_VALUE_OFFSET:_RCM_OFFSET], LITTLE_ENDIAN)

    if len(plaintext) >= NOTE_PLAINTEXT_SIZE:
        rcm = plaintext[_RCM_OFFSET:_MEMO_OFFSET]
        memo = plaintext[_MEMO_OFFSET:_MEMO_OFFSET + MEMO_SIZE]
        return DecryptedNote(
            diversifier=diversifier,
            value=value,
            rcm=rcm,
            memo=memo,
            memo_text=decode_memo(memo),
            memo_available=True,
            lead_byte=lead_byte,
        )

    # Compact: no memo on the wire
    return DecryptedNote(
        diversifier=diversifier,
        value=value,
        rcm=bytes(RCM_SIZE),
        memo=bytes(MEMO_SIZE),
        memo_text=MEMO_UNAVAILABLE_TEXT,
        memo_available=False,
        lead_byte=lead_byte,
    )


def build_note_plaintext(
    diversifier: bytes,
    value: int,
    rcm: bytes,
    memo: bytes,
    lead_byte: int = 0x02
) -> bytes:
    """Serialize note fields into the 564-byte plaintext layout."""
    if len(diversifier) != DIVERSIFIER_SIZE:
        raise ValueError(f"diversifier must be {DIVERSIFIER_SIZE} bytes")
    if len(rcm) != RCM_SIZE:
        raise ValueError(f"rcm must be {RCM_SIZE} bytes")
    if len(memo) != MEMO_SIZE:
        raise ValueError(f"memo must be {MEMO_SIZE} bytes")

    return (
        bytes([lead_byte])
        + diversifier
        + value.to_bytes(VALUE_SIZE, LITTLE_ENDIAN)
        + rcm
        + memo
    )
