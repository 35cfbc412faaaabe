"""
Shieldwatch Wire Messages

Message classes for the lightwalletd CompactTxStreamer service, described at
import time with protobuf descriptors instead of generated code.

Package: cash.z.wallet.sdk.rpc
    BlockID, BlockRange, TxFilter, RawTransaction, ChainSpec, Empty,
    LightdInfo, CompactBlock, CompactTx, CompactSaplingSpend,
    CompactSaplingOutput, CompactOrchardAction, ChainMetadata
"""

from __future__ import annotations
from typing import Dict, List, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from shieldwatch.constants import RPC_SERVICE

PROTO_PACKAGE = "cash.z.wallet.sdk.rpc"
PROTO_FILE = "shieldwatch/lightwalletd.proto"
SERVICE_NAME = "CompactTxStreamer"

_F = descriptor_pb2.FieldDescriptorProto

UINT32 = _F.TYPE_UINT32
UINT64 = _F.TYPE_UINT64
BYTES = _F.TYPE_BYTES
STRING = _F.TYPE_STRING
BOOL = _F.TYPE_BOOL

# (name, number, type or message name, repeated)
_MESSAGES: Dict[str, List[Tuple[str, int, object, bool]]] = {
    "BlockID": [
        ("height", 1, UINT64, False),
        ("hash", 2, BYTES, False),
    ],
    "BlockRange": [
        ("start", 1, "BlockID", False),
        ("end", 2, "BlockID", False),
    ],
    "TxFilter": [
        ("block", 1, "BlockID", False),
        ("index", 2, UINT64, False),
        ("hash", 3, BYTES, False),
    ],
    "RawTransaction": [
        ("data", 1, BYTES, False),
        ("height", 2, UINT64, False),
    ],
    "ChainSpec": [],
    "Empty": [],
    "LightdInfo": [
        ("version", 1, STRING, False),
        ("vendor", 2, STRING, False),
        ("taddrSupport", 3, BOOL, False),
        ("chainName", 4, STRING, False),
        ("saplingActivationHeight", 5, UINT64, False),
        ("consensusBranchId", 6, STRING, False),
        ("blockHeight", 7, UINT64, False),
        ("gitCommit", 8, STRING, False),
        ("branch", 9, STRING, False),
        ("buildDate", 10, STRING, False),
        ("buildUser", 11, STRING, False),
        ("estimatedHeight", 12, UINT64, False),
        ("zcashdBuild", 13, STRING, False),
        ("zcashdSubversion", 14, STRING, False),
    ],
    "ChainMetadata": [
        ("saplingCommitmentTreeSize", 1, UINT32, False),
        ("orchardCommitmentTreeSize", 2, UINT32, False),
    ],
    "CompactSaplingSpend": [
        ("nf", 1, BYTES, False),
    ],
    "CompactSaplingOutput": [
        ("cmu", 1, BYTES, False),
        ("ephemeralKey", 2, BYTES, False),
        ("ciphertext", 3, BYTES, False),
    ],
    "CompactOrchardAction": [
        ("nullifier", 1, BYTES, False),
        ("cmx", 2, BYTES, False),
        ("ephemeralKey", 3, BYTES, False),
        ("ciphertext", 4, BYTES, False),
    ],
    "CompactTx": [
        ("index", 1, UINT64, False),
        ("hash", 2, BYTES, False),
        ("fee", 3, UINT32, False),
        ("spends", 4, "CompactSaplingSpend", True),
        ("outputs", 5, "CompactSaplingOutput", True),
        ("actions", 6, "CompactOrchardAction", True),
    ],
    "CompactBlock": [
        ("protoVersion", 1, UINT32, False),
        ("height", 2, UINT64, False),
        ("hash", 3, BYTES, False),
        ("prevHash", 4, BYTES, False),
        ("time", 5, UINT32, False),
        ("header", 6, BYTES, False),
        ("vtx", 7, "CompactTx", True),
        ("chainMetadata", 8, "ChainMetadata", False),
    ],
}

# (method, request, response, server streaming)
_METHODS: List[Tuple[str, str, str, bool]] = [
    ("GetLatestBlock", "ChainSpec", "BlockID", False),
    ("GetBlock", "BlockID", "CompactBlock", False),
    ("GetBlockRange", "BlockRange", "CompactBlock", True),
    ("GetTransaction", "TxFilter", "RawTransaction", False),
    ("GetLightdInfo", "Empty", "LightdInfo", False),
]


def _qualified(name: str) -> str:
    return f".{PROTO_PACKAGE}.{name}"


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Describe the service and its messages as a proto3 file."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=PROTO_FILE,
        package=PROTO_PACKAGE,
        syntax="proto3",
    )

    for message_name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=message_name)
        for field_name, number, kind, repeated in fields:
            field = message.field.add(
                name=field_name,
                number=number,
                label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
            )
            if isinstance(kind, str):
                field.type = _F.TYPE_MESSAGE
                field.type_name = _qualified(kind)
            else:
                field.type = kind

    service = file_proto.service.add(name=SERVICE_NAME)
    for method_name, request, response, streaming in _METHODS:
        service.method.add(
            name=method_name,
            input_type=_qualified(request),
            output_type=_qualified(response),
            server_streaming=streaming,
        )

    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(build_file_descriptor().SerializeToString())


def _message_class(name: str):
    descriptor = _pool.FindMessageTypeByName(f"{PROTO_PACKAGE}.{name}")
    return message_factory.GetMessageClass(descriptor)


BlockID = _message_class("BlockID")
BlockRange = _message_class("BlockRange")
TxFilter = _message_class("TxFilter")
RawTransaction = _message_class("RawTransaction")
ChainSpec = _message_class("ChainSpec")
Empty = _message_class("Empty")
LightdInfo = _message_class("LightdInfo")
ChainMetadata = _message_class("ChainMetadata")
CompactSaplingSpend = _message_class("CompactSaplingSpend")
CompactSaplingOutput = _message_class("CompactSaplingOutput")
CompactOrchardAction = _message_class("CompactOrchardAction")
CompactTx = _message_class("CompactTx")
CompactBlock = _message_class("CompactBlock")


def method_path(method: str) -> str:
    """Full gRPC path, e.g. /cash.z.wallet.sdk.rpc.CompactTxStreamer/GetBlock."""
    return f"/{RPC_SERVICE}/{method}"
