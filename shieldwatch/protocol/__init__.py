"""
Shieldwatch Transaction Encoding
"""

from shieldwatch.protocol.transaction import FullSaplingOutput, parse_sapling_outputs

__all__ = [
    "FullSaplingOutput",
    "parse_sapling_outputs",
]
