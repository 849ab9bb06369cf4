"""Tests for the versioned snapshot envelope."""

import base64
import json

import pytest

from src.wallet_gate.snapshot.envelope import (
    ENVELOPE_VERSION,
    SnapshotParseError,
    WalletConfig,
    decode_snapshot_b64,
    decode_varint,
    encode_snapshot_b64,
    encode_varint,
    parse_snapshot,
    serialize_snapshot,
)

pytestmark = pytest.mark.unit


# ============================================================================
# VARINT
# ============================================================================


@pytest.mark.parametrize(
    "value,encoded",
    [(0, b"\x00"), (5, b"\x05"), (127, b"\x7f"), (128, b"\x80\x01"), (300, b"\xac\x02")],
)
def test_varint_known_encodings(value, encoded):
    assert encode_varint(value) == encoded
    assert decode_varint(encoded) == (value, len(encoded))


def test_varint_rejects_negative():
    with pytest.raises(ValueError):
        encode_varint(-1)


def test_varint_decodes_from_offset():
    assert decode_varint(b"\xff\xac\x02\x00", 1) == (300, 3)


def test_truncated_varint_is_an_error():
    with pytest.raises(SnapshotParseError, match="Truncated varint"):
        decode_varint(b"\x80\x80")


def test_overlong_varint_is_an_error():
    with pytest.raises(SnapshotParseError, match="too long"):
        decode_varint(b"\x80" * 11 + b"\x00")


# ============================================================================
# PARSE
# ============================================================================


def test_parse_version_three_splits_config_and_snapshot():
    data = bytes([0x03, 0x05]) + b"[1,2]" + b"\x01\x02\x03"

    parsed = parse_snapshot(data)

    assert parsed.version == 3
    assert parsed.config == [1, 2]
    assert parsed.wallet_snapshot == b"\x01\x02\x03"
    assert parsed.wallet_config() is None


@pytest.mark.parametrize("version", [1, 2])
def test_parse_legacy_returns_whole_buffer(version):
    data = bytes([version]) + b"opaque-wallet-state"

    parsed = parse_snapshot(data)

    assert parsed.version == version
    assert parsed.config is None
    assert parsed.wallet_snapshot == data


def test_parse_empty_is_an_error():
    with pytest.raises(SnapshotParseError, match="Empty"):
        parse_snapshot(b"")


@pytest.mark.parametrize("version", [0, 4, 255])
def test_parse_unknown_version_is_an_error(version):
    with pytest.raises(SnapshotParseError, match="Unsupported snapshot version"):
        parse_snapshot(bytes([version, 0x00]))


def test_parse_truncated_header_is_an_error():
    with pytest.raises(SnapshotParseError):
        parse_snapshot(bytes([0x03]))
    with pytest.raises(SnapshotParseError):
        parse_snapshot(bytes([0x03, 0x80]))


def test_parse_truncated_config_is_an_error():
    with pytest.raises(SnapshotParseError, match="truncated"):
        parse_snapshot(bytes([0x03, 0x0A]) + b"{}")


def test_parse_invalid_config_json_is_an_error():
    with pytest.raises(SnapshotParseError, match="not valid JSON"):
        parse_snapshot(bytes([0x03, 0x03]) + b"{x}")
    with pytest.raises(SnapshotParseError, match="not valid JSON"):
        parse_snapshot(bytes([0x03, 0x02]) + b"\xff\xfe")


def test_zero_length_config_is_an_error():
    with pytest.raises(SnapshotParseError, match="not valid JSON"):
        parse_snapshot(bytes([0x03, 0x00]))


# ============================================================================
# SERIALIZE
# ============================================================================


def test_serialize_writes_version_and_length_prefix():
    data = serialize_snapshot({"network": "test"}, b"\xaa\xbb")
    config_bytes = json.dumps({"network": "test"}, separators=(",", ":")).encode()

    assert data[0] == ENVELOPE_VERSION
    assert data[1] == len(config_bytes)
    assert data[2 : 2 + len(config_bytes)] == config_bytes
    assert data.endswith(b"\xaa\xbb")


def test_serialize_long_config_uses_multibyte_length():
    config = {"wabUrl": "https://" + "w" * 200}

    parsed = parse_snapshot(serialize_snapshot(config, b"snap"))

    assert parsed.config == config
    assert parsed.wallet_snapshot == b"snap"


def test_wallet_config_survives_envelope():
    config = WalletConfig(
        wab_url="https://wab.example",
        network="test",
        storage_url="https://storage.example",
        use_remote_storage=True,
        backup_storage_urls=["https://backup.example"],
    )

    parsed = parse_snapshot(serialize_snapshot(config, b"\x00\x01"))

    assert parsed.config["wabUrl"] == "https://wab.example"
    assert parsed.wallet_config() == config


def test_wallet_config_defaults_for_old_snapshots():
    restored = WalletConfig.from_dict({"storageUrl": "https://storage.example"})

    assert restored.network == "main"
    assert restored.use_wab is True
    assert restored.use_remote_storage is True
    assert restored.backup_storage_urls == []


def test_wallet_config_explicit_flags_win():
    restored = WalletConfig.from_dict(
        {"storageUrl": "https://s", "useRemoteStorage": False, "useWab": False, "backupStorageUrls": "x"}
    )

    assert restored.use_remote_storage is False
    assert restored.use_wab is False
    assert restored.backup_storage_urls == []


# ============================================================================
# BASE64 SLOT FORMAT
# ============================================================================


def test_base64_slot_text():
    text = encode_snapshot_b64({"network": "main"}, b"wallet")

    assert base64.b64decode(text)[0] == ENVELOPE_VERSION
    assert decode_snapshot_b64(text).wallet_snapshot == b"wallet"


def test_invalid_base64_is_a_parse_error():
    with pytest.raises(SnapshotParseError, match="base64"):
        decode_snapshot_b64("not base64!!")
