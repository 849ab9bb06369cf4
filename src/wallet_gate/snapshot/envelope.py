"""Versioned snapshot envelope.

Format (version 3):

    [0x03][varint: config length][config JSON, UTF-8][wallet snapshot bytes]

Versions 1 and 2 are the wallet engine's own snapshot formats and carry no
config; they are returned verbatim. The varint is unsigned LEB128 (7 bits
per byte, low group first, bit 7 set on every byte but the last).
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from loguru import logger

from ..config import Config

ENVELOPE_VERSION = 3
LEGACY_VERSIONS = (1, 2)
_MAX_VARINT_BYTES = 10


class SnapshotParseError(ValueError):
    """Raised when a persisted snapshot cannot be decoded."""


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as unsigned LEB128."""
    if value < 0:
        raise ValueError(f"varint value must be >= 0, got {value}")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value & 0x7F)
    return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode an unsigned LEB128 integer.

    Args:
        data: Buffer to read from
        offset: Position of the first varint byte

    Returns:
        (value, offset just past the varint)

    Raises:
        SnapshotParseError: If the buffer ends before the final byte or the
            varint is longer than 10 bytes
    """
    value = 0
    shift = 0
    position = offset
    while True:
        if position >= len(data):
            raise SnapshotParseError("Truncated varint in snapshot header")
        if position - offset >= _MAX_VARINT_BYTES:
            raise SnapshotParseError("Varint in snapshot header is too long")
        byte = data[position]
        position += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, position
        shift += 7


@dataclass
class WalletConfig:
    """
    App configuration persisted alongside the wallet snapshot.

    Serialized with the camelCase keys the wallet application has always
    written, so snapshots stay readable across versions.
    """

    wab_url: str = ""
    network: str = field(default_factory=lambda: Config.DEFAULT_NETWORK)
    storage_url: str = ""
    message_box_url: str = ""
    auth_method: str = ""
    use_wab: bool = field(default_factory=lambda: Config.DEFAULT_USE_WAB)
    use_remote_storage: bool = False
    use_message_box: bool = False
    backup_storage_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wabUrl": self.wab_url,
            "network": self.network,
            "storageUrl": self.storage_url,
            "messageBoxUrl": self.message_box_url,
            "authMethod": self.auth_method,
            "useWab": self.use_wab,
            "useRemoteStorage": self.use_remote_storage,
            "useMessageBox": self.use_message_box,
            "backupStorageUrls": list(self.backup_storage_urls),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WalletConfig":
        """
        Restore a config, filling defaults for missing keys.

        ``useRemoteStorage`` is inferred from a non-empty storage URL when the
        snapshot predates the flag.
        """
        storage_url = data.get("storageUrl") or ""
        use_remote_storage = data.get("useRemoteStorage")
        if use_remote_storage is None:
            use_remote_storage = bool(storage_url)
        use_wab = data.get("useWab")
        if use_wab is None:
            use_wab = Config.DEFAULT_USE_WAB
        backups = data.get("backupStorageUrls") or []
        if not isinstance(backups, list):
            backups = []

        return cls(
            wab_url=data.get("wabUrl") or "",
            network=data.get("network") or Config.DEFAULT_NETWORK,
            storage_url=storage_url,
            message_box_url=data.get("messageBoxUrl") or "",
            auth_method=data.get("authMethod") or "",
            use_wab=bool(use_wab),
            use_remote_storage=bool(use_remote_storage),
            use_message_box=bool(data.get("useMessageBox") or False),
            backup_storage_urls=[str(url) for url in backups],
        )


@dataclass(frozen=True)
class ParsedSnapshot:
    """
    Decoded snapshot envelope.

    Attributes:
        version: Leading version byte
        wallet_snapshot: Opaque wallet engine snapshot (the whole buffer for
            legacy versions)
        config: Decoded config JSON (None for legacy versions)
    """

    version: int
    wallet_snapshot: bytes
    config: Optional[Any] = None

    def wallet_config(self) -> Optional[WalletConfig]:
        if not isinstance(self.config, Mapping):
            return None
        return WalletConfig.from_dict(self.config)


ConfigLike = Union[WalletConfig, Mapping[str, Any]]


def serialize_snapshot(config: ConfigLike, wallet_snapshot: bytes) -> bytes:
    """
    Wrap a wallet snapshot and app config in a version 3 envelope.

    Args:
        config: WalletConfig or any JSON-serializable mapping
        wallet_snapshot: Opaque wallet engine snapshot bytes

    Returns:
        Envelope bytes
    """
    if isinstance(config, WalletConfig):
        config = config.to_dict()
    config_bytes = json.dumps(dict(config), separators=(",", ":")).encode("utf-8")
    return (
        bytes([ENVELOPE_VERSION])
        + encode_varint(len(config_bytes))
        + config_bytes
        + bytes(wallet_snapshot)
    )


def parse_snapshot(data: bytes) -> ParsedSnapshot:
    """
    Decode a snapshot envelope.

    Args:
        data: Envelope bytes

    Returns:
        ParsedSnapshot

    Raises:
        SnapshotParseError: Empty input, unsupported version, truncated
            header or config, or undecodable config JSON
    """
    data = bytes(data)
    if not data:
        raise SnapshotParseError("Empty snapshot")

    version = data[0]
    if version in LEGACY_VERSIONS:
        logger.debug(f"Loading version {version} snapshot (legacy, no config)")
        return ParsedSnapshot(version=version, wallet_snapshot=data)

    if version != ENVELOPE_VERSION:
        raise SnapshotParseError(f"Unsupported snapshot version: {version}")

    config_length, offset = decode_varint(data, 1)
    end = offset + config_length
    if end > len(data):
        raise SnapshotParseError(
            f"Snapshot config truncated: need {config_length} bytes, "
            f"have {len(data) - offset}"
        )

    try:
        config = json.loads(data[offset:end].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotParseError(f"Snapshot config is not valid JSON: {e}") from e

    logger.debug(f"Loaded version 3 snapshot with {config_length} byte config")
    return ParsedSnapshot(version=version, wallet_snapshot=data[end:], config=config)


def encode_snapshot_b64(config: ConfigLike, wallet_snapshot: bytes) -> str:
    """Serialize and base64-encode for a text key-value slot."""
    return base64.b64encode(serialize_snapshot(config, wallet_snapshot)).decode("ascii")


def decode_snapshot_b64(text: str) -> ParsedSnapshot:
    """
    Decode a base64 slot value and parse the envelope.

    Raises:
        SnapshotParseError: Invalid base64 or envelope
    """
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SnapshotParseError(f"Snapshot is not valid base64: {e}") from e
    return parse_snapshot(data)
