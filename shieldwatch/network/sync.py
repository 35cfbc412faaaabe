"""
Shieldwatch Block Scanning

Streams compact blocks from a lightwalletd server and trial-decrypts every
Sapling output with the configured incoming viewing key.

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED -> SCANNING -> CONNECTED
    Any failure returns to DISCONNECTED.

last_scanned_height only advances once a whole range has been consumed,
so a failed stream is retried in full by the next sync.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, TYPE_CHECKING

from shieldwatch.constants import HASH_SIZE, SCAN_BATCH_SIZE
from shieldwatch.core.types import IncomingViewingKey, ShieldedTransaction
from shieldwatch.crypto.note_encryption import (
    DecryptionStatus,
    try_decrypt_output,
    try_decrypt_full,
)
from shieldwatch.errors import (
    ConnectionFailureError,
    InvalidParameterError,
    StreamFailureError,
)
from shieldwatch.protocol.transaction import parse_sapling_outputs

if TYPE_CHECKING:
    from shieldwatch.core.block import CompactBlock, LightdInfo
    from shieldwatch.network.client import LightwalletdClient

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection state of the scan engine."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    SCANNING = auto()


@dataclass
class SyncProgress:
    """Scan counters."""
    last_scanned_height: int = 0
    server_height: int = 0
    blocks_scanned: int = 0
    outputs_scanned: int = 0
    matches_found: int = 0
    false_accepts: int = 0

    @property
    def blocks_behind(self) -> int:
        return max(0, self.server_height - self.last_scanned_height)


class ScanEngine:
    """
    Owns the connection, the viewing key and the scan position.

    The client is any object with the LightwalletdClient coroutine methods;
    tests pass an in-memory fake.
    """

    def __init__(
        self,
        client: LightwalletdClient,
        viewing_key: IncomingViewingKey,
        batch_size: int = SCAN_BATCH_SIZE,
        start_height: Optional[int] = None
    ):
        if batch_size <= 0:
            raise InvalidParameterError("batch_size", f"must be positive, got {batch_size}")

        self.client = client
        self.viewing_key = viewing_key
        self.batch_size = batch_size
        self.state = ConnectionStatus.DISCONNECTED
        self.progress = SyncProgress()
        self.server_info: Optional[LightdInfo] = None

        self._start_fixed = False
        # Matches from completed batches of a sync that later failed
        self._carried: List[ShieldedTransaction] = []

        if start_height is not None:
            self.set_start_height(start_height)

    @property
    def last_scanned_height(self) -> int:
        return self.progress.last_scanned_height

    @property
    def is_connected(self) -> bool:
        return self.state in (ConnectionStatus.CONNECTED, ConnectionStatus.SCANNING)

    def set_start_height(self, height: int) -> None:
        """Scan from height (inclusive) on the next sync."""
        if height < 0:
            raise InvalidParameterError("start_height", f"must be non-negative, got {height}")
        self.progress.last_scanned_height = max(0, height - 1)
        self._start_fixed = True
        logger.info(f"Scan start height set to {height}")

    async def connect(self) -> bool:
        """
        Open the session and confirm the server is alive.

        Without an explicit start height, scanning starts at the Sapling
        activation height reported by the server.

        Returns:
            True on success. Failures are logged, never raised.
        """
        self.state = ConnectionStatus.CONNECTING
        try:
            info = await self.client.get_lightd_info()
        except Exception as e:
            logger.error(f"Cannot connect to {self.client.address}: {e}")
            self.state = ConnectionStatus.DISCONNECTED
            return False

        self.server_info = info
        self.progress.server_height = info.block_height

        if (
            not self._start_fixed
            and self.progress.last_scanned_height == 0
            and info.sapling_activation_height > 0
        ):
            self.progress.last_scanned_height = info.sapling_activation_height - 1

        self.state = ConnectionStatus.CONNECTED
        logger.info(
            f"Connected to {self.client.address} "
            f"(chain={info.chain_name}, height={info.block_height}, "
            f"sapling_activation={info.sapling_activation_height})"
        )
        return True

    def _scan_block(self, block: CompactBlock) -> List[ShieldedTransaction]:
        found = []
        for tx, index, output in block.sapling_outputs():
            self.progress.outputs_scanned += 1
            result = try_decrypt_output(output, self.viewing_key)
            if not result.matched:
                continue
            if len(tx.hash) != HASH_SIZE:
                logger.warning(
                    f"Skipping match in tx {tx.index} at height {block.height}: "
                    f"hash is {len(tx.hash)} bytes"
                )
                continue

            shielded = ShieldedTransaction.from_note(
                tx_hash=tx.hash,
                output_index=index,
                block_height=block.height,
                block_time=block.time,
                note=result.note,
            )
            self.progress.matches_found += 1
            logger.info(
                f"Incoming note at height {block.height}: "
                f"{shielded.amount_decimal} ZEC in {shielded.id}"
            )
            found.append(shielded)

        self.progress.blocks_scanned += 1
        return found

    async def scan_blocks(
        self,
        start_height: int,
        end_height: int
    ) -> List[ShieldedTransaction]:
        """
        Scan the inclusive range [start_height, end_height].

        Returns:
            Matches in stream order; empty for an inverted range

        Raises:
            ConnectionFailureError: If not connected
            StreamFailureError: If the stream fails; the scan position is
                left unchanged
        """
        if start_height > end_height:
            return []

        if not self.is_connected:
            raise ConnectionFailureError(self.client.address, "not connected")

        logger.debug(f"Scanning blocks {start_height} to {end_height}")
        self.state = ConnectionStatus.SCANNING
        found: List[ShieldedTransaction] = []

        try:
            async for block in self.client.get_block_range(start_height, end_height):
                found.extend(self._scan_block(block))
        except Exception as e:
            self.state = ConnectionStatus.DISCONNECTED
            logger.error(f"Block stream {start_height}-{end_height} failed: {e}")
            raise StreamFailureError(start_height, end_height, str(e)) from e

        self.state = ConnectionStatus.CONNECTED
        self.progress.last_scanned_height = max(
            self.progress.last_scanned_height, end_height
        )
        return found

    async def sync(self) -> List[ShieldedTransaction]:
        """
        Scan from the last scanned height to the server tip in batches.

        Matches from batches completed before a failure are held and
        returned by the next successful sync.

        Raises:
            ConnectionFailureError: If the server or its tip is unreachable
            StreamFailureError: If a batch stream fails
        """
        if not self.is_connected and not await self.connect():
            raise ConnectionFailureError(self.client.address, "connect failed")

        try:
            tip = await self.client.get_latest_block()
        except Exception as e:
            self.state = ConnectionStatus.DISCONNECTED
            raise ConnectionFailureError(self.client.address, str(e)) from e

        current_height = tip.height
        self.progress.server_height = current_height

        if self.progress.last_scanned_height >= current_height:
            found, self._carried = self._carried, []
            return found

        logger.info(
            f"Syncing {self.progress.last_scanned_height + 1} to {current_height}"
        )

        start = self.progress.last_scanned_height + 1
        while start <= current_height:
            end = min(start + self.batch_size - 1, current_height)
            self._carried.extend(await self.scan_blocks(start, end))
            start = end + 1

        found, self._carried = self._carried, []
        return found

    async def resolve_memo(
        self,
        tx: ShieldedTransaction
    ) -> Optional[ShieldedTransaction]:
        """
        Recover the memo of a compact match from the full transaction.

        Returns:
            The transaction with its memo; the transaction unchanged if the
            full bytes cannot be fetched or parsed; None if authenticated
            decryption shows the compact match was a false accept
        """
        if tx.memo_available:
            return tx

        try:
            raw = await self.client.get_transaction(tx.tx_hash)
            outputs = parse_sapling_outputs(raw.data)
        except Exception as e:
            logger.warning(f"Cannot fetch full transaction {tx.txid}: {e}")
            return tx

        if tx.output_index >= len(outputs):
            logger.warning(
                f"Transaction {tx.txid} has {len(outputs)} Sapling outputs, "
                f"expected index {tx.output_index}"
            )
            return tx

        output = outputs[tx.output_index]
        result = try_decrypt_full(
            output.ephemeral_key,
            output.enc_ciphertext,
            self.viewing_key,
        )

        if result.matched:
            return tx.with_memo(result.note.memo_text)

        if result.status is DecryptionStatus.NOT_FOR_KEY:
            self.progress.false_accepts += 1
            logger.warning(
                f"Discarding compact false accept {tx.id}: {result.reason}"
            )
            return None

        logger.warning(f"Full output of {tx.id} unusable: {result.reason}")
        return tx

    def get_status(self) -> dict:
        """Get current engine status."""
        return {
            "state": self.state.name,
            "connected": self.is_connected,
            "server": self.client.address,
            "has_viewing_key": self.viewing_key is not None,
            "last_scanned_height": self.progress.last_scanned_height,
            "server_height": self.progress.server_height,
            "blocks_behind": self.progress.blocks_behind,
            "blocks_scanned": self.progress.blocks_scanned,
            "outputs_scanned": self.progress.outputs_scanned,
            "matches_found": self.progress.matches_found,
            "false_accepts": self.progress.false_accepts,
        }

    async def close(self) -> None:
        await self.client.close()
        self.state = ConnectionStatus.DISCONNECTED
        logger.info("Scan engine closed")


def get_sync_info() -> dict:
    """Get information about block scanning."""
    return {
        "states": [s.name for s in ConnectionStatus],
        "batch_size": SCAN_BATCH_SIZE,
        "decryption": "compact (ChaCha20) with full-transaction memo recovery",
    }
