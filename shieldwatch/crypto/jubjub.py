"""
Shieldwatch Jubjub Curve Arithmetic

Twisted Edwards curve over the BLS12-381 scalar field:

    a*x^2 + y^2 = 1 + d*x^2*y^2,   a = -1,   d = -(10240/10241)

Points are kept in affine coordinates. Invalid encodings decode to None;
nothing in this module raises on untrusted input.

NOTE: scalar_mult branches on scalar bits and is not constant-time.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from shieldwatch.constants import (
    JUBJUB_Q,
    JUBJUB_A,
    JUBJUB_D,
    JUBJUB_R,
    POINT_SIZE,
    SCALAR_SIZE,
    LITTLE_ENDIAN,
)


@dataclass(frozen=True, slots=True)
class CurvePoint:
    """
    Affine point on Jubjub.

    Coordinates are reduced field elements. Construct through
    decompress_point or the group operations below.
    """
    x: int
    y: int

    def __post_init__(self):
        if not (0 <= self.x < JUBJUB_Q and 0 <= self.y < JUBJUB_Q):
            raise ValueError("coordinate out of field range")

    def __repr__(self) -> str:
        return f"CurvePoint(x={self.x:064x}, y={self.y:064x})"

    @property
    def is_identity(self) -> bool:
        return self.x == 0 and self.y == 1


IDENTITY = CurvePoint(0, 1)


# ==============================================================================
# FIELD ARITHMETIC
# ==============================================================================

def mod_inverse(a: int, p: int = JUBJUB_Q) -> int:
    """Multiplicative inverse modulo p. Raises ValueError for a == 0 mod p."""
    return pow(a, -1, p)


def legendre_symbol(n: int, p: int = JUBJUB_Q) -> int:
    """Return 1 for a non-zero quadratic residue, p - 1 for a non-residue, 0 for 0."""
    return pow(n % p, (p - 1) // 2, p)


def _find_non_residue(p: int) -> int:
    z = 2
    while legendre_symbol(z, p) != p - 1:
        z += 1
    return z


def mod_sqrt(n: int, p: int = JUBJUB_Q) -> Optional[int]:
    """
    Square root modulo an odd prime p (Tonelli-Shanks).

    The Jubjub base field has p - 1 = 2^32 * t, so the general
    procedure is used for every input.

    Returns:
        A root r with r*r == n (mod p), or None if n is a non-residue
    """
    n %= p
    if n == 0:
        return 0
    if legendre_symbol(n, p) != 1:
        return None

    # p - 1 = q * 2^s with q odd
    q = p - 1
    s = 0
    while q % 2 == 0:
        q //= 2
        s += 1

    z = _find_non_residue(p)

    m = s
    c = pow(z, q, p)
    t = pow(n, q, p)
    r = pow(n, (q + 1) // 2, p)

    while t != 1:
        # Least i with t^(2^i) == 1
        i = 1
        t2 = t * t % p
        while t2 != 1:
            t2 = t2 * t2 % p
            i += 1
            if i == m:
                return None

        b = pow(c, 1 << (m - i - 1), p)
        m = i
        c = b * b % p
        t = t * c % p
        r = r * b % p

    return r


# ==============================================================================
# POINT ENCODING
# ==============================================================================

def is_on_curve(point: CurvePoint) -> bool:
    """Check a*x^2 + y^2 == 1 + d*x^2*y^2."""
    x2 = point.x * point.x % JUBJUB_Q
    y2 = point.y * point.y % JUBJUB_Q
    lhs = (JUBJUB_A * x2 + y2) % JUBJUB_Q
    rhs = (1 + JUBJUB_D * x2 * y2) % JUBJUB_Q
    return lhs == rhs


def decompress_point(data: bytes) -> Optional[CurvePoint]:
    """
    Decode a 32-byte compressed point.

    Encoding: y as 255-bit little-endian integer, sign of x in the top bit.

    Returns:
        The point, or None when the encoding is invalid:
        wrong length, y >= q, zero denominator or x^2 not a square.
    """
    if len(data) != POINT_SIZE:
        return None

    encoded = int.from_bytes(data, LITTLE_ENDIAN)
    sign = encoded >> 255
    y = encoded & ((1 << 255) - 1)

    if y >= JUBJUB_Q:
        return None

    # x^2 = (y^2 - 1) / (d*y^2 - a)
    y2 = y * y % JUBJUB_Q
    numerator = (y2 - 1) % JUBJUB_Q
    denominator = (JUBJUB_D * y2 - JUBJUB_A) % JUBJUB_Q
    if denominator == 0:
        return None

    x2 = numerator * mod_inverse(denominator) % JUBJUB_Q
    x = mod_sqrt(x2)
    if x is None:
        return None

    if x & 1 != sign:
        x = (JUBJUB_Q - x) % JUBJUB_Q

    return CurvePoint(x, y)


def compress_point(point: CurvePoint) -> bytes:
    """Encode a point as y || sign(x), little-endian."""
    encoded = point.y | ((point.x & 1) << 255)
    return encoded.to_bytes(POINT_SIZE, LITTLE_ENDIAN)


def encode_x(point: CurvePoint) -> bytes:
    """x-coordinate as 32 little-endian bytes."""
    return point.x.to_bytes(POINT_SIZE, LITTLE_ENDIAN)


# ==============================================================================
# GROUP OPERATIONS
# ==============================================================================

def point_add(p1: CurvePoint, p2: CurvePoint) -> CurvePoint:
    """
    Unified twisted Edwards addition.

        x3 = (x1*y2 + y1*x2) / (1 + d*x1*x2*y1*y2)
        y3 = (y1*y2 - a*x1*x2) / (1 - d*x1*x2*y1*y2)

    Complete on Jubjub (d is a non-square), so doubling and the identity
    need no special cases.
    """
    x1, y1 = p1.x, p1.y
    x2, y2 = p2.x, p2.y

    x1x2 = x1 * x2 % JUBJUB_Q
    y1y2 = y1 * y2 % JUBJUB_Q
    dxy = JUBJUB_D * x1x2 % JUBJUB_Q * y1y2 % JUBJUB_Q

    x_num = (x1 * y2 + y1 * x2) % JUBJUB_Q
    x_den = (1 + dxy) % JUBJUB_Q
    y_num = (y1y2 - JUBJUB_A * x1x2) % JUBJUB_Q
    y_den = (1 - dxy) % JUBJUB_Q

    # One inversion for both denominators
    inv = mod_inverse(x_den * y_den % JUBJUB_Q)
    x3 = x_num * y_den % JUBJUB_Q * inv % JUBJUB_Q
    y3 = y_num * x_den % JUBJUB_Q * inv % JUBJUB_Q

    return CurvePoint(x3, y3)


def point_double(point: CurvePoint) -> CurvePoint:
    return point_add(point, point)


def point_negate(point: CurvePoint) -> CurvePoint:
    return CurvePoint((JUBJUB_Q - point.x) % JUBJUB_Q, point.y)


def scalar_from_bytes(scalar: bytes) -> int:
    """Little-endian scalar reduced modulo the subgroup order r."""
    return int.from_bytes(scalar, LITTLE_ENDIAN) % JUBJUB_R


def scalar_mult(scalar: bytes, point: CurvePoint) -> CurvePoint:
    """
    Compute [k]P for a 32-byte little-endian scalar k.

    k is reduced modulo r, then double-and-add runs from the identity,
    consuming bits least-significant first.
    """
    if len(scalar) != SCALAR_SIZE:
        raise ValueError(f"scalar must be {SCALAR_SIZE} bytes, got {len(scalar)}")

    k = scalar_from_bytes(scalar)
    result = IDENTITY
    current = point

    while k > 0:
        if k & 1:
            result = point_add(result, current)
        current = point_double(current)
        k >>= 1

    return result


def get_curve_info() -> dict:
    """Get information about the curve parameters."""
    return {
        "curve": "Jubjub",
        "field_modulus": hex(JUBJUB_Q),
        "a": "-1",
        "d": hex(JUBJUB_D),
        "subgroup_order": hex(JUBJUB_R),
        "point_encoding": "y (255 bits LE) || sign(x)",
    }
