"""
Shieldwatch Entry Point

Runs the watch loop against a lightwalletd server and logs every incoming
payment at or above the configured minimum amount.
"""

from __future__ import annotations
import asyncio
import json
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Optional

from shieldwatch.constants import (
    NETWORK_TESTNET,
    DEFAULT_SERVER_MAINNET,
    DEFAULT_SERVER_TESTNET,
)
from shieldwatch.core.types import ShieldedTransaction
from shieldwatch.errors import ShieldWatchError
from shieldwatch.network.client import LightwalletdClient
from shieldwatch.network.sync import ScanEngine
from shieldwatch.node.config import ScannerConfig, setup_logging
from shieldwatch.node.store import ProcessedIdStore
from shieldwatch.node.watcher import TransactionAssembler, TransactionHandler, Watcher

logger = logging.getLogger(__name__)


@dataclass
class Scanner:
    """Wired-up components for one viewing key."""
    config: ScannerConfig
    engine: ScanEngine
    store: ProcessedIdStore
    assembler: TransactionAssembler
    watcher: Watcher


def payment_logger(min_amount_zatoshi: int) -> TransactionHandler:
    """Handler that logs payments at or above min_amount_zatoshi."""

    async def handle(tx: ShieldedTransaction) -> None:
        if tx.amount_base_units < min_amount_zatoshi:
            logger.info(
                f"Ignoring {tx.id}: {tx.amount_decimal} ZEC below minimum"
            )
            return
        logger.info(
            f"Payment received: {tx.amount_decimal} ZEC at height {tx.block_height} "
            f"({tx.id}) memo={tx.memo!r}"
        )

    return handle


def build_scanner(
    config: ScannerConfig,
    handler: Optional[TransactionHandler] = None,
    client: Optional[LightwalletdClient] = None
) -> Scanner:
    """
    Construct engine, store, assembler and watcher from configuration.

    Raises:
        InvalidConfigError: If the configuration does not validate
    """
    config.ensure_valid()

    if client is None:
        client = LightwalletdClient(config.server.url, timeout=config.server.timeout_sec)

    engine = ScanEngine(
        client,
        config.incoming_viewing_key(),
        batch_size=config.scan.batch_size,
        start_height=config.scan.start_height,
    )

    store = ProcessedIdStore(config.processed_path)
    store.load()

    if handler is None:
        handler = payment_logger(config.scan.min_amount_zatoshi)

    assembler = TransactionAssembler(
        engine,
        store,
        handler,
        fetch_memos=config.scan.fetch_memos,
    )
    watcher = Watcher(
        engine,
        assembler,
        poll_interval=config.scan.poll_interval_sec,
        max_consecutive_failures=config.scan.max_consecutive_failures,
    )
    return Scanner(config, engine, store, assembler, watcher)


async def run(config: ScannerConfig, once: bool = False) -> int:
    """Run until interrupted or halted. Returns a process exit code."""
    scanner = build_scanner(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scanner.watcher.stop)
        except NotImplementedError:
            # Windows event loops
            pass

    try:
        if not await scanner.engine.connect():
            logger.warning("Initial connection failed; the watch loop will retry")

        if once:
            await scanner.watcher.run(max_polls=1)
            return 0 if scanner.watcher.last_poll_ok else 1

        await scanner.watcher.run()
        return 1 if scanner.watcher.halt_reason else 0
    finally:
        await scanner.engine.close()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Shielded payment watcher")
    parser.add_argument("--config", "-c", type=str, help="Path to JSON config file")
    parser.add_argument("--env-file", type=str, help="Path to .env file")
    parser.add_argument("--testnet", action="store_true", help="Use testnet defaults")
    parser.add_argument("--server", type=str, help="lightwalletd address")
    parser.add_argument("--start-height", type=int, help="First block height to scan")
    parser.add_argument("--data-dir", type=str, help="Data directory")
    parser.add_argument("--once", action="store_true", help="Run a single poll and exit")
    parser.add_argument("--show-config", action="store_true", help="Print configuration and exit")
    parser.add_argument("--log-level", type=str, help="Log level")
    args = parser.parse_args()

    try:
        if args.config:
            config = ScannerConfig.load(args.config)
        else:
            config = ScannerConfig.from_env(args.env_file)
    except (OSError, ValueError, ShieldWatchError) as e:
        print(f"Cannot load configuration: {e}", file=sys.stderr)
        sys.exit(2)

    # Command line overrides
    if args.testnet:
        config.network = NETWORK_TESTNET
        if config.server.url == DEFAULT_SERVER_MAINNET:
            config.server.url = DEFAULT_SERVER_TESTNET
    if args.server:
        config.server.url = args.server
    if args.start_height is not None:
        config.scan.start_height = args.start_height
    if args.data_dir:
        config.storage.data_dir = args.data_dir
    if args.log_level:
        config.log.level = args.log_level

    if args.show_config:
        print(json.dumps(config.to_dict(), indent=2))
        return

    setup_logging(config.log)

    try:
        code = asyncio.run(run(config, once=args.once))
    except ShieldWatchError as e:
        logger.error(e.message)
        code = 2
    except KeyboardInterrupt:
        code = 0

    sys.exit(code)


if __name__ == "__main__":
    main()
