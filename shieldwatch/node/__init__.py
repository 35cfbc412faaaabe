"""
Shieldwatch Node
Configuration, delivery and the watch loop.
"""

from shieldwatch.node.config import ScannerConfig
from shieldwatch.node.store import ProcessedIdStore
from shieldwatch.node.watcher import TransactionAssembler, Watcher

__all__ = [
    "ScannerConfig",
    "ProcessedIdStore",
    "TransactionAssembler",
    "Watcher",
]
