"""
Shieldwatch Scanner Configuration
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from shieldwatch.constants import (
    NETWORK_MAINNET,
    NETWORK_TESTNET,
    NETWORKS,
    DEFAULT_SERVER_MAINNET,
    DEFAULT_SERVER_TESTNET,
    DEFAULT_POLL_INTERVAL_SEC,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_MIN_AMOUNT_ZATOSHI,
    SCAN_BATCH_SIZE,
    PROCESSED_IDS_FILE,
    RPC_TIMEOUT_SEC,
)
from shieldwatch.core.types import IncomingViewingKey
from shieldwatch.errors import InvalidConfigError, InvalidViewingKeyError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """Lightwalletd server configuration."""
    url: str = DEFAULT_SERVER_MAINNET
    timeout_sec: float = RPC_TIMEOUT_SEC


@dataclass
class ScanConfig:
    """Scanning and watch loop configuration."""
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    min_amount_zatoshi: int = DEFAULT_MIN_AMOUNT_ZATOSHI
    start_height: Optional[int] = None
    batch_size: int = SCAN_BATCH_SIZE
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    fetch_memos: bool = True


@dataclass
class StorageConfig:
    """Storage configuration."""
    data_dir: str = "./data"
    processed_file: str = PROCESSED_IDS_FILE


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class ScannerConfig:
    """
    Complete scanner configuration.

    viewing_key is the incoming viewing key as 64 hex characters. It is
    never written by to_dict().
    """
    network: str = NETWORK_MAINNET
    viewing_key: str = ""

    # Sub-configurations
    server: ServerConfig = field(default_factory=ServerConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def testnet(self) -> bool:
        return self.network == NETWORK_TESTNET

    @property
    def data_path(self) -> Path:
        """Get data directory path."""
        return Path(self.storage.data_dir)

    @property
    def processed_path(self) -> Path:
        """Get processed-id file path."""
        return self.data_path / self.storage.processed_file

    def incoming_viewing_key(self) -> IncomingViewingKey:
        """
        Parse the configured viewing key.

        Raises:
            InvalidViewingKeyError: If missing or malformed
        """
        if not self.viewing_key:
            raise InvalidViewingKeyError("no viewing key configured")
        return IncomingViewingKey.from_hex(self.viewing_key)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.network not in NETWORKS:
            errors.append(f"Unknown network: {self.network}")

        if not self.server.url:
            errors.append("server url cannot be empty")

        if self.server.timeout_sec <= 0:
            errors.append("timeout_sec must be positive")

        try:
            self.incoming_viewing_key()
        except InvalidViewingKeyError as e:
            errors.append(e.message)

        # Scan validation
        if self.scan.poll_interval_sec <= 0:
            errors.append("poll_interval_sec must be positive")

        if self.scan.min_amount_zatoshi < 0:
            errors.append("min_amount_zatoshi cannot be negative")

        if self.scan.start_height is not None and self.scan.start_height < 0:
            errors.append("start_height cannot be negative")

        if self.scan.batch_size < 1:
            errors.append("batch_size must be at least 1")

        if self.scan.max_consecutive_failures < 1:
            errors.append("max_consecutive_failures must be at least 1")

        # Storage validation
        if not self.storage.data_dir:
            errors.append("data_dir cannot be empty")

        return errors

    def ensure_valid(self) -> None:
        """Raise InvalidConfigError if validate() reports anything."""
        errors = self.validate()
        if errors:
            raise InvalidConfigError(errors)

    def save(self, path: str) -> None:
        """Save configuration to file, viewing key included."""
        config_dict = self.to_dict()
        config_dict["viewing_key"] = self.viewing_key

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> ScannerConfig:
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls(
            network=data.get("network", NETWORK_MAINNET),
            viewing_key=data.get("viewing_key", ""),
        )

        if "server" in data:
            config.server = ServerConfig(**data["server"])

        if "scan" in data:
            config.scan = ScanConfig(**data["scan"])

        if "storage" in data:
            config.storage = StorageConfig(**data["storage"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> ScannerConfig:
        """
        Build configuration from environment variables.

        A .env file is loaded first (without overriding variables already
        set). Unset variables keep their network defaults.

        Raises:
            InvalidConfigError: If a numeric variable cannot be parsed
        """
        load_dotenv(env_file)

        network = os.getenv("ZCASH_NETWORK", NETWORK_MAINNET).strip().lower()
        if network == NETWORK_TESTNET:
            config = cls.default_testnet()
        else:
            config = cls.default_mainnet()
            config.network = network

        config.viewing_key = os.getenv("ZCASH_VIEWING_KEY", "").strip()
        config.server.url = os.getenv("LIGHTWALLETD_URL", config.server.url)
        config.storage.data_dir = os.getenv("SHIELDWATCH_DATA_DIR", config.storage.data_dir)
        config.log.level = os.getenv("SHIELDWATCH_LOG_LEVEL", config.log.level)

        errors = []

        def _number(name: str, kind, current):
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return current
            try:
                return kind(raw)
            except ValueError:
                errors.append(f"{name} is not a valid {kind.__name__}: {raw!r}")
                return current

        config.scan.poll_interval_sec = _number(
            "ZCASH_POLL_INTERVAL", float, config.scan.poll_interval_sec
        )
        config.scan.min_amount_zatoshi = _number(
            "ZCASH_MIN_AMOUNT", int, config.scan.min_amount_zatoshi
        )
        config.scan.start_height = _number(
            "ZCASH_START_HEIGHT", int, config.scan.start_height
        )
        config.scan.max_consecutive_failures = _number(
            "SHIELDWATCH_MAX_FAILURES", int, config.scan.max_consecutive_failures
        )

        fetch_memos = os.getenv("SHIELDWATCH_FETCH_MEMOS")
        if fetch_memos is not None:
            config.scan.fetch_memos = fetch_memos.strip().lower() in _TRUE_VALUES

        if errors:
            raise InvalidConfigError(errors)

        return config

    @classmethod
    def default_testnet(cls) -> ScannerConfig:
        """Create default testnet configuration."""
        config = cls(network=NETWORK_TESTNET)
        config.server.url = DEFAULT_SERVER_TESTNET
        config.storage.data_dir = "./data-testnet"
        return config

    @classmethod
    def default_mainnet(cls) -> ScannerConfig:
        """Create default mainnet configuration."""
        config = cls(network=NETWORK_MAINNET)
        config.server.url = DEFAULT_SERVER_MAINNET
        return config

    def to_dict(self) -> dict:
        """Export configuration as dictionary (viewing key redacted)."""
        return {
            "network": self.network,
            "viewing_key": "<redacted>" if self.viewing_key else "",
            "server": asdict(self.server),
            "scan": asdict(self.scan),
            "storage": asdict(self.storage),
            "log": asdict(self.log),
        }


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )


def get_config_info() -> dict:
    """Get information about configuration options."""
    return {
        "networks": list(NETWORKS),
        "default_server_mainnet": DEFAULT_SERVER_MAINNET,
        "default_server_testnet": DEFAULT_SERVER_TESTNET,
        "default_poll_interval_sec": DEFAULT_POLL_INTERVAL_SEC,
        "config_format": "JSON or environment (.env)",
    }
