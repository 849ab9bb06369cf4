"""Snapshot envelope codec and persistence slot."""

from .envelope import (
    ENVELOPE_VERSION,
    ParsedSnapshot,
    SnapshotParseError,
    WalletConfig,
    decode_snapshot_b64,
    decode_varint,
    encode_snapshot_b64,
    encode_varint,
    parse_snapshot,
    serialize_snapshot,
)
from .store import SnapshotStore

__all__ = [
    "ENVELOPE_VERSION",
    "ParsedSnapshot",
    "SnapshotParseError",
    "WalletConfig",
    "decode_snapshot_b64",
    "decode_varint",
    "encode_snapshot_b64",
    "encode_varint",
    "parse_snapshot",
    "serialize_snapshot",
    "SnapshotStore",
]
