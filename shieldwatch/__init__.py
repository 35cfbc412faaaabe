"""
Shieldwatch
Incoming shielded payment detection for Zcash Sapling

Scans compact blocks from a lightwalletd server with an incoming viewing
key and delivers each new payment to a handler exactly once per id.
"""

__version__ = "0.1.0"
__author__ = "Shieldwatch"

from shieldwatch.constants import NETWORK_MAINNET, NETWORK_TESTNET, ZATOSHI_PER_ZEC

__all__ = [
    "NETWORK_MAINNET",
    "NETWORK_TESTNET",
    "ZATOSHI_PER_ZEC",
    "__version__",
]
