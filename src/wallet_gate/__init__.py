"""Wallet Gate - permission request arbitration for wallet applications."""

__version__ = "0.1.0"

from .engine import ArbitrationEngine
from .governance import GatePhase, GrantDecision, covers, project
from .requests import RequestKind
from .snapshot import SnapshotParseError, SnapshotStore, parse_snapshot, serialize_snapshot

__all__ = [
    "ArbitrationEngine",
    "GatePhase",
    "GrantDecision",
    "RequestKind",
    "SnapshotParseError",
    "SnapshotStore",
    "covers",
    "parse_snapshot",
    "project",
    "serialize_snapshot",
    "__version__",
]
