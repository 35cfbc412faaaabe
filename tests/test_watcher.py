"""
Shieldwatch Delivery and Watch Loop Tests
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shieldwatch.errors import InvalidParameterError, WatchCircuitOpenError
from shieldwatch.network.sync import ScanEngine
from shieldwatch.node.store import ProcessedIdStore
from shieldwatch.node.watcher import TransactionAssembler, Watcher

from conftest import (
    build_v4_transaction,
    encrypt_to_key,
    make_block,
    noise_output,
    tx_hash_for,
)


def _engine(fake_client, viewing_key) -> ScanEngine:
    return ScanEngine(fake_client, viewing_key, start_height=500000)


class TestTransactionAssembler:
    """Tests for deduplicated delivery."""

    @pytest.mark.asyncio
    async def test_delivers_and_marks(self, fake_client, viewing_key, store):
        """Test a new match is delivered once and persisted."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock()

        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)
        report = await assembler.process(await engine.sync())

        assert report.delivered == 1
        handler.assert_awaited_once()
        delivered = handler.await_args.args[0]
        assert delivered.amount_base_units == 1_000
        assert delivered.id in store

    @pytest.mark.asyncio
    async def test_rescan_no_duplicates(self, fake_client, viewing_key, store):
        """Test re-scanning a covered range delivers nothing new."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock()
        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)

        await assembler.process(await engine.sync())
        rescanned = await engine.scan_blocks(500000, 500000)
        report = await assembler.process(rescanned)

        assert report.duplicates == 1
        assert report.delivered == 0
        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_dedup_across_restart(self, fake_client, viewing_key, store):
        """Test ids persisted by one run suppress delivery in the next."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))

        first = TransactionAssembler(_engine(fake_client, viewing_key), store, AsyncMock(), False)
        await first.process(await first.engine.sync())

        reloaded = ProcessedIdStore(store.path)
        reloaded.load()
        handler = AsyncMock()
        second = TransactionAssembler(_engine(fake_client, viewing_key), reloaded, handler, False)
        await second.process(await second.engine.sync())

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_failure_retried(self, fake_client, viewing_key, store):
        """Test a failed delivery is not marked and is retried next pass."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock(side_effect=[RuntimeError("downstream down"), None])
        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)

        report = await assembler.process(await engine.sync())
        assert report.failed == 1
        assert not report.ok
        assert len(store) == 0
        assert len(assembler.pending) == 1

        # The scan position moved on; the retry comes from the pending queue
        report = await assembler.process(await engine.sync())
        assert report.delivered == 1
        assert handler.await_count == 2
        assert len(store) == 1
        assert assembler.pending == []

    @pytest.mark.asyncio
    async def test_memo_resolved_before_delivery(self, fake_client, viewing_key, store):
        """Test the handler receives the real memo when full bytes are available."""
        out = encrypt_to_key(viewing_key, 1_000, "for the invoice")
        tx_hash = tx_hash_for(1)
        fake_client.add_block(make_block(500000, [(tx_hash, [out.compact])]))
        fake_client.add_transaction(tx_hash, build_v4_transaction([out]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock()

        assembler = TransactionAssembler(engine, store, handler)
        await assembler.process(await engine.sync())

        delivered = handler.await_args.args[0]
        assert delivered.memo == "for the invoice"
        assert delivered.memo_available

    @pytest.mark.asyncio
    async def test_false_accept_not_delivered(
        self, fake_client, viewing_key, other_viewing_key, store
    ):
        """Test a match disproved by the full path never reaches the handler."""
        real = encrypt_to_key(viewing_key, 1_000)
        foreign = encrypt_to_key(other_viewing_key, 1_000)
        tx_hash = tx_hash_for(1)
        fake_client.add_block(make_block(500000, [(tx_hash, [real.compact])]))
        fake_client.add_transaction(tx_hash, build_v4_transaction([foreign]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock()

        assembler = TransactionAssembler(engine, store, handler)
        report = await assembler.process(await engine.sync())

        assert report.discarded == 1
        handler.assert_not_awaited()
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_two_outputs_one_transaction(self, fake_client, viewing_key, store):
        """Test two outputs of one transaction are delivered separately."""
        a = encrypt_to_key(viewing_key, 1)
        b = encrypt_to_key(viewing_key, 2)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [a.compact, b.compact])]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock()

        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)
        await assembler.process(await engine.sync())

        values = [call.args[0].amount_base_units for call in handler.await_args_list]
        assert values == [1, 2]
        assert len(store) == 2


class TestWatcher:
    """Tests for the poll loop."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_circuit_opens_after_five_handler_failures(
        self, fake_client, viewing_key, store
    ):
        """Test five consecutive failing polls stop the loop with no sixth poll."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)
        handler = AsyncMock(side_effect=RuntimeError("always fails"))
        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)

        watcher = Watcher(engine, assembler, poll_interval=0, max_consecutive_failures=5)
        await watcher.run()

        assert watcher.running is False
        assert watcher.poll_count == 5
        assert handler.await_count == 5
        assert isinstance(watcher.halt_reason, WatchCircuitOpenError)
        assert watcher.halt_reason.failures == 5
        assert len(store) == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_circuit_opens_on_sync_failures(self, fake_client, viewing_key, store):
        """Test an unreachable server counts as failed polls."""
        fake_client.fail_info = True
        engine = _engine(fake_client, viewing_key)
        assembler = TransactionAssembler(engine, store, AsyncMock(), fetch_memos=False)

        watcher = Watcher(engine, assembler, poll_interval=0, max_consecutive_failures=3)
        await watcher.run()

        assert watcher.poll_count == 3
        assert watcher.get_status()["halted"] is True

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_success_resets_failures(self, fake_client, viewing_key, store):
        """Test a successful poll resets the consecutive failure count."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)

        calls = {"n": 0}

        async def handler(tx):
            calls["n"] += 1
            if calls["n"] < 3:
                raise RuntimeError("transient")

        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)
        watcher = Watcher(engine, assembler, poll_interval=0, max_consecutive_failures=3)

        assert not await watcher.poll_once()
        assert not await watcher.poll_once()
        assert await watcher.poll_once()
        assert len(store) == 1

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stop_ends_loop(self, fake_client, viewing_key, store):
        """Test stop() from the handler ends the loop after the current poll."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)

        watcher = None

        async def handler(tx):
            watcher.stop()

        assembler = TransactionAssembler(engine, store, handler, fetch_memos=False)
        watcher = Watcher(engine, assembler, poll_interval=3600)
        await watcher.run()

        assert watcher.poll_count == 1
        assert watcher.halt_reason is None
        assert not watcher.running


    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stop_cancels_sync_in_flight(self, fake_client, viewing_key, store):
        """Test stop() during a long sync streams no further batches."""
        fake_client.add_block(make_block(500199, [(tx_hash_for(1), [noise_output()])]))
        fake_client.stream_delay = 0.05
        engine = ScanEngine(fake_client, viewing_key, batch_size=10, start_height=500000)
        assembler = TransactionAssembler(engine, store, AsyncMock(), fetch_memos=False)
        watcher = Watcher(engine, assembler, poll_interval=0)

        task = asyncio.ensure_future(watcher.run())
        while len(fake_client.range_calls) < 2:
            await asyncio.sleep(0.01)

        watcher.stop()
        await asyncio.wait_for(task, timeout=5)
        await asyncio.sleep(0.2)

        assert len(fake_client.range_calls) == 2
        # Only the completed first batch counts as scanned
        assert engine.last_scanned_height == 500009
        assert watcher.poll_count == 1
        assert watcher.halt_reason is None
        assert not watcher.running

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stop_before_run(self, fake_client, viewing_key, store):
        """Test a stop requested before run() starts prevents any poll."""
        engine = _engine(fake_client, viewing_key)
        assembler = TransactionAssembler(engine, store, AsyncMock(), fetch_memos=False)
        watcher = Watcher(engine, assembler, poll_interval=0.01)

        watcher.stop()
        await asyncio.wait_for(watcher.run(), timeout=5)

        assert watcher.poll_count == 0
        assert fake_client.range_calls == []
        assert not watcher.running
        assert watcher.get_status()["stop_requested"] is True

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_max_polls(self, fake_client, viewing_key, store):
        """Test run(max_polls=1) performs a single poll and records its result."""
        out = encrypt_to_key(viewing_key, 1_000)
        fake_client.add_block(make_block(500000, [(tx_hash_for(1), [out.compact])]))
        engine = _engine(fake_client, viewing_key)
        assembler = TransactionAssembler(engine, store, AsyncMock(), fetch_memos=False)
        watcher = Watcher(engine, assembler, poll_interval=3600)

        await watcher.run(max_polls=1)

        assert watcher.poll_count == 1
        assert watcher.last_poll_ok is True
        assert len(store) == 1
        assert not watcher.running

    def test_threshold_validated(self, fake_client, viewing_key, store):
        """Test the failure threshold must be positive."""
        engine = _engine(fake_client, viewing_key)
        assembler = TransactionAssembler(engine, store, AsyncMock())
        with pytest.raises(InvalidParameterError):
            Watcher(engine, assembler, max_consecutive_failures=0)
