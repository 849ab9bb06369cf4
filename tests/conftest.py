"""Pytest fixtures and test doubles for the wallet gate test suite."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis import asyncio as aioredis

from src.wallet_gate.audit import AuditLogger
from src.wallet_gate.engine import ArbitrationEngine
from src.wallet_gate.requests.models import RequestKind


# ============================================================================
# HOST DOUBLES
# ============================================================================


class FakeWindow:
    """Host window that records every focus call."""

    def __init__(self, focused: bool = False):
        self.focused = focused
        self.calls: List[str] = []

    async def is_focused(self) -> bool:
        self.calls.append("is_focused")
        return self.focused

    async def request_focus(self) -> None:
        self.calls.append("request_focus")
        self.focused = True

    async def relinquish_focus(self) -> None:
        self.calls.append("relinquish_focus")
        self.focused = False

    def count(self, name: str) -> int:
        return self.calls.count(name)


class FakeSurface:
    """Modal surface that tracks which modals are open."""

    def __init__(self):
        self.open: Dict[RequestKind, bool] = {}
        self.history: List[Tuple[RequestKind, bool]] = []

    def set_modal_open(self, kind: RequestKind, is_open: bool) -> None:
        self.open[kind] = is_open
        self.history.append((kind, is_open))

    def is_open(self, kind: RequestKind) -> bool:
        return self.open.get(kind, False)


def make_permissions_manager() -> MagicMock:
    manager = MagicMock()
    manager.bind_callback = MagicMock()
    manager.grant_grouped_permission = AsyncMock(return_value=None)
    manager.deny_grouped_permission = AsyncMock(return_value=None)
    manager.revoke_permission = AsyncMock(return_value=None)
    return manager


def read_audit(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


# ============================================================================
# PAYLOAD BUILDERS
# ============================================================================


def basket_payload(request_id: str, basket: str = "photos", originator: str = "app.example"):
    return {"requestID": request_id, "originator": originator, "basket": basket}


def certificate_payload(
    request_id: str,
    cert_type: str = "identity-cert",
    fields=("name", "email"),
    originator: str = "app.example",
):
    return {
        "requestID": request_id,
        "originator": originator,
        "certificate": {
            "certType": cert_type,
            "fields": {name: "encrypted" for name in fields},
            "verifier": "02abc",
        },
    }


def protocol_payload(request_id: str, name: str = "todo list", level: int = 1):
    return {
        "requestID": request_id,
        "originator": "app.example",
        "protocolID": [level, name],
        "counterparty": "self",
    }


def spending_payload(request_id: str, satoshis: int = 1000):
    return {
        "requestID": request_id,
        "originator": "app.example",
        "spending": {
            "satoshis": satoshis,
            "lineItems": [{"description": "coffee", "satoshis": satoshis}],
        },
    }


def group_payload(request_id: str = "G", permissions=None):
    return {
        "requestID": request_id,
        "originator": "app.example",
        "permissions": permissions if permissions is not None else {"baskets": []},
    }


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def audit_path(tmp_path) -> Path:
    return tmp_path / "audit.jsonl"


@pytest.fixture
def audit_logger(audit_path) -> AuditLogger:
    return AuditLogger(log_path=str(audit_path))


@pytest.fixture
def window() -> FakeWindow:
    return FakeWindow(focused=False)


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def permissions_manager() -> MagicMock:
    return make_permissions_manager()


@pytest.fixture
async def engine(permissions_manager, window, surface, audit_logger):
    """
    Arbitration engine with recorded collaborators and a short grace window.

    Cleanup:
        Releases any pending group so no grace timer outlives the test
    """
    arbiter = ArbitrationEngine(
        permissions_manager,
        window,
        surface,
        grace_ms=50,
        audit=audit_logger,
    )
    yield arbiter
    arbiter._gate.release(None)
    await asyncio.sleep(0)


@pytest.fixture
async def redis_client():
    """
    Provide a clean Redis connection, skipping when no server is reachable.

    Cleanup:
        Flushes the Redis database and closes the client
    """
    client = aioredis.from_url(
        "redis://localhost:6379",
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.flushdb()
    except (aioredis.ConnectionError, aioredis.TimeoutError):
        await client.aclose()
        pytest.skip("Redis server not available")

    try:
        yield client
    finally:
        await client.flushdb()
        await client.aclose()
