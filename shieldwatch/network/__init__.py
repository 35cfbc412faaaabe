"""
Shieldwatch Network Layer
Lightwalletd client and block scanning.
"""

from shieldwatch.network.client import LightwalletdClient
from shieldwatch.network.sync import ScanEngine, ConnectionStatus, SyncProgress

__all__ = [
    "LightwalletdClient",
    "ScanEngine",
    "ConnectionStatus",
    "SyncProgress",
]
