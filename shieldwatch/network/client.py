"""
Shieldwatch Lightwalletd Client

Async gRPC client for the CompactTxStreamer service.

Transport: plaintext for loopback servers, TLS otherwise. An explicit
https:// scheme always selects TLS.
"""

from __future__ import annotations
import ipaddress
import logging
from typing import AsyncIterator, Optional, Tuple

import grpc

from shieldwatch.constants import LOOPBACK_HOSTS, RPC_TIMEOUT_SEC
from shieldwatch.core.block import BlockID, CompactBlock, LightdInfo, RawTransaction
from shieldwatch.network import proto

logger = logging.getLogger(__name__)


def is_loopback_host(host: str) -> bool:
    """True for localhost names and loopback IP literals."""
    host = host.strip("[]").lower()
    if host in LOOPBACK_HOSTS:
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def parse_server_address(address: str) -> Tuple[str, bool]:
    """
    Split a configured server address into a gRPC target and a TLS flag.

    Args:
        address: host:port, optionally prefixed with http:// or https://

    Returns:
        (target, use_tls)
    """
    target = address.strip()
    forced_tls = False

    if target.startswith("https://"):
        target = target[len("https://"):]
        forced_tls = True
    elif target.startswith("http://"):
        target = target[len("http://"):]

    target = target.rstrip("/")

    if target.startswith("["):
        host = target[:target.find("]") + 1]
    elif target.count(":") == 1:
        host = target.rsplit(":", 1)[0]
    else:
        host = target

    use_tls = forced_tls or not is_loopback_host(host)
    return target, use_tls


class LightwalletdClient:
    """
    Thin wrapper over a grpc.aio channel.

    Responses are converted to shieldwatch.core.block types. gRPC errors
    propagate as grpc.RpcError; callers decide how to classify them.
    """

    def __init__(self, address: str, timeout: float = RPC_TIMEOUT_SEC):
        self.address = address
        self.target, self.use_tls = parse_server_address(address)
        self.timeout = timeout
        self._channel: Optional[grpc.aio.Channel] = None

    @property
    def is_open(self) -> bool:
        return self._channel is not None

    def _open(self) -> grpc.aio.Channel:
        if self._channel is None:
            if self.use_tls:
                credentials = grpc.ssl_channel_credentials()
                self._channel = grpc.aio.secure_channel(self.target, credentials)
            else:
                self._channel = grpc.aio.insecure_channel(self.target)
            logger.debug(
                f"Opened {'TLS' if self.use_tls else 'plaintext'} channel to {self.target}"
            )
        return self._channel

    def _unary(self, method: str, request_cls, response_cls):
        return self._open().unary_unary(
            proto.method_path(method),
            request_serializer=request_cls.SerializeToString,
            response_deserializer=response_cls.FromString,
        )

    async def get_latest_block(self) -> BlockID:
        call = self._unary("GetLatestBlock", proto.ChainSpec, proto.BlockID)
        reply = await call(proto.ChainSpec(), timeout=self.timeout)
        return BlockID(height=reply.height, hash=bytes(reply.hash))

    async def get_block(self, height: int) -> CompactBlock:
        call = self._unary("GetBlock", proto.BlockID, proto.CompactBlock)
        reply = await call(proto.BlockID(height=height), timeout=self.timeout)
        return CompactBlock.from_proto(reply)

    async def get_block_range(
        self,
        start_height: int,
        end_height: int
    ) -> AsyncIterator[CompactBlock]:
        """Stream compact blocks for the inclusive range [start, end]."""
        call = self._open().unary_stream(
            proto.method_path("GetBlockRange"),
            request_serializer=proto.BlockRange.SerializeToString,
            response_deserializer=proto.CompactBlock.FromString,
        )
        request = proto.BlockRange(
            start=proto.BlockID(height=start_height),
            end=proto.BlockID(height=end_height),
        )
        async for reply in call(request):
            yield CompactBlock.from_proto(reply)

    async def get_transaction(self, tx_hash: bytes) -> RawTransaction:
        """Fetch full transaction bytes by hash (internal byte order)."""
        call = self._unary("GetTransaction", proto.TxFilter, proto.RawTransaction)
        reply = await call(proto.TxFilter(hash=tx_hash), timeout=self.timeout)
        return RawTransaction(data=bytes(reply.data), height=reply.height)

    async def get_lightd_info(self) -> LightdInfo:
        call = self._unary("GetLightdInfo", proto.Empty, proto.LightdInfo)
        reply = await call(proto.Empty(), timeout=self.timeout)
        return LightdInfo.from_proto(reply)

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
            logger.debug(f"Closed channel to {self.target}")
