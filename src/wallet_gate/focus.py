"""Session-wide focus coordination across all request kinds."""

from typing import Optional, Protocol, Set

from loguru import logger

from .requests.models import RequestKind


class HostWindow(Protocol):
    """Focus primitives exposed by the host window."""

    async def is_focused(self) -> bool:
        """Return True if the wallet window is currently foregrounded."""

    async def request_focus(self) -> None:
        """Bring the wallet window to the foreground."""

    async def relinquish_focus(self) -> None:
        """Hand focus back to whatever had it before."""


class FocusCoordinator:
    """
    Tracks one focus episode shared by every request kind.

    An episode starts when the first kind goes from empty to non-empty and
    ends when the last active kind drains. Only the start queries and
    requests focus, and only the end relinquishes it, using the single
    ``was_focused`` flag captured at the start. Kinds joining an episode that
    is already running never touch the window.
    """

    def __init__(self, window: HostWindow):
        self._window = window
        self._active: Set[RequestKind] = set()
        self._was_focused: Optional[bool] = None

    @property
    def active_kinds(self) -> Set[RequestKind]:
        return set(self._active)

    @property
    def episode_active(self) -> bool:
        return bool(self._active)

    @property
    def was_focused(self) -> Optional[bool]:
        return self._was_focused

    def activate(self, kind: RequestKind) -> bool:
        """
        Mark a kind as showing requests.

        Returns:
            True if this starts a new episode (no kind was active)
        """
        starts = not self._active
        self._active.add(kind)
        return starts

    def deactivate(self, kind: RequestKind) -> bool:
        """
        Mark a kind as drained.

        Returns:
            True if this ends the episode (the kind was the last active one)
        """
        if kind not in self._active:
            return False
        self._active.discard(kind)
        return not self._active

    async def begin_episode(self) -> bool:
        """
        Record whether the app was already focused and request focus if not.

        Returns:
            Whether the window was focused before the episode began
        """
        was_focused = bool(await self._window.is_focused())
        self._was_focused = was_focused
        if not was_focused:
            logger.debug("Requesting window focus for permission episode")
            await self._window.request_focus()
        return was_focused

    async def end_episode(self, was_focused: Optional[bool] = None) -> None:
        """Relinquish focus unless the app held it before the episode began."""
        if was_focused is None:
            was_focused = self._was_focused
        self._was_focused = None
        if was_focused is False:
            logger.debug("Relinquishing window focus after permission episode")
            await self._window.relinquish_focus()
