"""Tests for session-wide focus episodes."""

import pytest

from src.wallet_gate.focus import FocusCoordinator
from src.wallet_gate.requests.models import RequestKind

from .conftest import FakeWindow


def test_first_activation_starts_episode():
    coordinator = FocusCoordinator(FakeWindow())

    assert coordinator.activate(RequestKind.BASKET) is True
    assert coordinator.activate(RequestKind.SPENDING) is False
    assert coordinator.active_kinds == {RequestKind.BASKET, RequestKind.SPENDING}


def test_only_last_deactivation_ends_episode():
    coordinator = FocusCoordinator(FakeWindow())
    coordinator.activate(RequestKind.BASKET)
    coordinator.activate(RequestKind.SPENDING)

    assert coordinator.deactivate(RequestKind.BASKET) is False
    assert coordinator.episode_active is True
    assert coordinator.deactivate(RequestKind.SPENDING) is True
    assert coordinator.episode_active is False


def test_deactivating_inactive_kind_is_noop():
    coordinator = FocusCoordinator(FakeWindow())

    assert coordinator.deactivate(RequestKind.PROTOCOL) is False


@pytest.mark.asyncio
async def test_unfocused_window_requests_and_relinquishes():
    window = FakeWindow(focused=False)
    coordinator = FocusCoordinator(window)

    was_focused = await coordinator.begin_episode()
    await coordinator.end_episode()

    assert was_focused is False
    assert window.count("request_focus") == 1
    assert window.count("relinquish_focus") == 1


@pytest.mark.asyncio
async def test_focused_window_is_left_alone():
    """If the app already had focus, it keeps it after the episode ends."""
    window = FakeWindow(focused=True)
    coordinator = FocusCoordinator(window)

    await coordinator.begin_episode()
    assert coordinator.was_focused is True
    await coordinator.end_episode()

    assert window.count("request_focus") == 0
    assert window.count("relinquish_focus") == 0
    assert coordinator.was_focused is None


@pytest.mark.asyncio
async def test_end_without_begin_does_not_relinquish():
    window = FakeWindow(focused=False)
    coordinator = FocusCoordinator(window)

    await coordinator.end_episode()

    assert window.count("relinquish_focus") == 0
