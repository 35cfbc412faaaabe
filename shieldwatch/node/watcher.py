"""
Shieldwatch Delivery and Watch Loop

TransactionAssembler turns scan matches into handler calls with
at-least-once semantics: an id is marked processed only after the handler
returns, and undelivered matches stay queued for the next poll.

Watcher polls the scan engine on a fixed interval and halts itself after
a run of consecutive failed polls.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from shieldwatch.constants import (
    DEFAULT_POLL_INTERVAL_SEC,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
)
from shieldwatch.core.types import ShieldedTransaction
from shieldwatch.errors import (
    InvalidParameterError,
    ShieldWatchError,
    WatchCircuitOpenError,
)
from shieldwatch.network.sync import ScanEngine
from shieldwatch.node.store import ProcessedIdStore

logger = logging.getLogger(__name__)

TransactionHandler = Callable[[ShieldedTransaction], Awaitable[None]]


@dataclass
class DeliveryReport:
    """Outcome of one delivery pass."""
    delivered: int = 0
    failed: int = 0
    discarded: int = 0
    duplicates: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0


class TransactionAssembler:
    """
    Deduplicates matches and delivers them to the handler in order.

    Handler calls are awaited one at a time.
    """

    def __init__(
        self,
        engine: ScanEngine,
        store: ProcessedIdStore,
        handler: TransactionHandler,
        fetch_memos: bool = True
    ):
        self.engine = engine
        self.store = store
        self.handler = handler
        self.fetch_memos = fetch_memos
        self._pending: Dict[str, ShieldedTransaction] = {}

    @property
    def pending(self) -> List[ShieldedTransaction]:
        return list(self._pending.values())

    def enqueue(self, transactions: Iterable[ShieldedTransaction]) -> int:
        """
        Queue matches not yet processed or queued.

        Returns:
            Number of matches skipped as duplicates
        """
        duplicates = 0
        for tx in transactions:
            if tx.id in self.store or tx.id in self._pending:
                duplicates += 1
                continue
            self._pending[tx.id] = tx
        return duplicates

    async def _prepare(self, tx: ShieldedTransaction) -> Optional[ShieldedTransaction]:
        if not self.fetch_memos or tx.memo_available:
            return tx
        return await self.engine.resolve_memo(tx)

    async def deliver_pending(self) -> DeliveryReport:
        """Deliver every queued match. Failed deliveries stay queued."""
        report = DeliveryReport()

        for tx_id in list(self._pending):
            tx = await self._prepare(self._pending[tx_id])
            if tx is None:
                del self._pending[tx_id]
                report.discarded += 1
                continue
            self._pending[tx_id] = tx

            try:
                await self.handler(tx)
            except Exception as e:
                logger.error(f"Handler failed for {tx_id}: {e}", exc_info=True)
                report.failed += 1
                continue

            self.store.mark(tx_id)
            del self._pending[tx_id]
            report.delivered += 1

        return report

    async def process(self, transactions: Iterable[ShieldedTransaction]) -> DeliveryReport:
        """Queue new matches and deliver everything pending."""
        duplicates = self.enqueue(transactions)
        report = await self.deliver_pending()
        report.duplicates = duplicates

        if report.delivered or report.failed or report.discarded:
            logger.info(
                f"Delivery: {report.delivered} delivered, {report.failed} failed, "
                f"{report.discarded} discarded, {len(self._pending)} pending"
            )
        return report


class Watcher:
    """
    Poll loop with a consecutive-failure circuit breaker.

    A poll fails when sync raises or any handler call raises. A successful
    poll resets the failure count. stop() is sticky: once requested, run()
    never polls again, and a poll in flight is cancelled. The scan position
    only advances at batch boundaries, so a cancelled poll loses nothing.
    """

    def __init__(
        self,
        engine: ScanEngine,
        assembler: TransactionAssembler,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    ):
        if max_consecutive_failures < 1:
            raise InvalidParameterError(
                "max_consecutive_failures", "must be at least 1"
            )

        self.engine = engine
        self.assembler = assembler
        self.poll_interval = poll_interval
        self.max_consecutive_failures = max_consecutive_failures

        self.running = False
        self.stop_requested = False
        self.poll_count = 0
        self.consecutive_failures = 0
        self.last_poll_ok: Optional[bool] = None
        self.halt_reason: Optional[WatchCircuitOpenError] = None
        self._wake = asyncio.Event()
        self._poll_task: Optional[asyncio.Task] = None

    async def poll_once(self) -> bool:
        """
        Run one sync and delivery pass.

        Returns:
            True if the poll succeeded
        """
        self.poll_count += 1

        try:
            found = await self.engine.sync()
        except ShieldWatchError as e:
            logger.error(f"Poll {self.poll_count} failed: {e.message}")
            return False

        report = await self.assembler.process(found)
        return report.ok

    async def _cancellable_poll(self) -> Optional[bool]:
        """Run poll_once as a task stop() can cancel. None means cancelled."""
        self._poll_task = asyncio.ensure_future(self.poll_once())
        try:
            return await self._poll_task
        except asyncio.CancelledError:
            if not self.stop_requested:
                raise
            logger.info(f"Poll {self.poll_count} cancelled by stop request")
            return None
        finally:
            self._poll_task = None

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def run(self, max_polls: Optional[int] = None) -> None:
        """
        Poll until stopped, the failure threshold is reached, or max_polls
        polls have run.
        """
        if self.stop_requested:
            logger.info("Stop requested before start; not polling")
            return

        self.running = True
        self.halt_reason = None
        logger.info(f"Watching every {self.poll_interval}s")

        polls = 0
        try:
            while self.running and not self.stop_requested:
                ok = await self._cancellable_poll()
                if ok is None:
                    break
                polls += 1
                self.last_poll_ok = ok

                if ok:
                    self.consecutive_failures = 0
                else:
                    self.consecutive_failures += 1
                    logger.warning(
                        f"Consecutive failures: "
                        f"{self.consecutive_failures}/{self.max_consecutive_failures}"
                    )
                    if self.consecutive_failures >= self.max_consecutive_failures:
                        self.halt_reason = WatchCircuitOpenError(self.consecutive_failures)
                        logger.error(self.halt_reason.message)
                        break

                if max_polls is not None and polls >= max_polls:
                    break
                if not self.stop_requested:
                    await self._sleep()
        finally:
            self.running = False
        logger.info(f"Watch loop stopped after {self.poll_count} polls")

    def stop(self) -> None:
        """Request the loop to end, cancelling a poll in flight."""
        self.stop_requested = True
        self.running = False
        self._wake.set()

        task = self._poll_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "stop_requested": self.stop_requested,
            "poll_count": self.poll_count,
            "consecutive_failures": self.consecutive_failures,
            "max_consecutive_failures": self.max_consecutive_failures,
            "pending": len(self.assembler.pending),
            "processed": len(self.assembler.store),
            "halted": self.halt_reason is not None,
        }
