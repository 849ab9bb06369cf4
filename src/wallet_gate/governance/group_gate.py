"""Group permission gate.

While a grouped-permission request is pending, every individual request is
held in a deferred buffer instead of being shown. When the group is
granted, denied, or left unanswered past the grace window, each deferred
request is checked against the decision: covered requests are dropped,
uncovered ones return to their live queues.

State machine:

    IDLE    --enter(group)-------------------------> PENDING
    PENDING --release(grant | deny | timeout)------> IDLE
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from loguru import logger

from ..requests.models import LIVE_KINDS, GroupRequest, LiveRequest, RequestKind
from ..requests.queue import RequestQueue
from .coverage import covers
from .decision import GrantDecision


class GatePhase(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


class DeferredBuffer:
    """Per-kind ordered holding area for requests parked behind a group."""

    def __init__(self):
        self._items: Dict[RequestKind, List[LiveRequest]] = {
            kind: [] for kind in LIVE_KINDS
        }

    def add(self, request: LiveRequest) -> None:
        if request.kind not in self._items:
            raise ValueError(f"Cannot defer request of kind {request.kind!r}")
        self._items[request.kind].append(request)

    def extend(self, kind: RequestKind, requests: List[LiveRequest]) -> None:
        self._items[kind].extend(requests)

    def items(self, kind: RequestKind) -> List[LiveRequest]:
        return list(self._items[kind])

    def total(self) -> int:
        return sum(len(items) for items in self._items.values())

    def clear(self) -> None:
        for items in self._items.values():
            items.clear()


class GraceTimer:
    """Single-fire, cancellable delayed callback backed by an asyncio task."""

    def __init__(self, delay_seconds: float, callback: Callable[[], Awaitable[None]]):
        self.delay_seconds = delay_seconds
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # The expiry callback releases the gate, which cancels this timer.
        if task is not current:
            task.cancel()

    async def _run(self) -> None:
        await asyncio.sleep(self.delay_seconds)
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Grace timer callback failed: {e}")


@dataclass
class ReleaseOutcome:
    """
    Result of releasing the gate.

    Attributes:
        request_id: Group request whose decision was applied
        covered: Deferred requests discarded as already authorized
        requeued: Deferred requests returned to their live queues
        reopened_kinds: Kinds whose live queue went from empty to non-empty
    """

    request_id: Optional[str]
    covered: List[LiveRequest] = field(default_factory=list)
    requeued: List[LiveRequest] = field(default_factory=list)
    reopened_kinds: List[RequestKind] = field(default_factory=list)


class GroupGate:
    """
    Two-phase gate owning the deferred buffer and the grace timer.

    All methods are synchronous so each transition completes without
    yielding to the event loop.
    """

    def __init__(
        self,
        queues: Mapping[RequestKind, RequestQueue],
        grace_seconds: float,
        on_timeout: Optional[Callable[[str], Awaitable[None]]] = None,
    ):
        missing = [kind for kind in LIVE_KINDS if kind not in queues]
        if missing:
            raise ValueError(f"GroupGate needs a queue for every live kind, missing {missing}")
        if grace_seconds <= 0:
            raise ValueError(f"grace_seconds must be > 0, got {grace_seconds}")

        self._queues = queues
        self._grace_seconds = grace_seconds
        self._on_timeout = on_timeout
        self._phase = GatePhase.IDLE
        self._pending_request_id: Optional[str] = None
        self._buffer = DeferredBuffer()
        self._timer: Optional[GraceTimer] = None

    @property
    def phase(self) -> GatePhase:
        return self._phase

    @property
    def pending_request_id(self) -> Optional[str]:
        return self._pending_request_id

    @property
    def buffer(self) -> DeferredBuffer:
        return self._buffer

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and self._timer.armed

    def enter(self, group: GroupRequest) -> Optional[List[RequestKind]]:
        """
        Move from IDLE to PENDING for a group request.

        Drains every live queue into the deferred buffer (per-kind order kept)
        and arms the grace timer.

        Args:
            group: Group request now at the head of the group queue

        Returns:
            Kinds whose live queue was non-empty before the drain, or None if
            the gate was already pending
        """
        if self._phase is GatePhase.PENDING:
            return None

        drained_kinds = []
        for kind in LIVE_KINDS:
            items = self._queues[kind].drain()
            if items:
                self._buffer.extend(kind, items)
                drained_kinds.append(kind)

        self._phase = GatePhase.PENDING
        self._pending_request_id = group.request_id
        self._arm_timer(group.request_id)

        logger.info(
            f"Group request {group.request_id} pending; "
            f"deferred {self._buffer.total()} request(s)"
        )
        return drained_kinds

    def defer(self, request: LiveRequest) -> None:
        """Park a request that arrived while the gate is pending."""
        if self._phase is not GatePhase.PENDING:
            raise RuntimeError("Requests can only be deferred while a group is pending")
        self._buffer.add(request)
        logger.debug(
            f"Deferred {request.kind.value} request {request.request_id} "
            f"behind group {self._pending_request_id}"
        )

    def release(
        self, decision: Optional[GrantDecision], request_id: Optional[str] = None
    ) -> Optional[ReleaseOutcome]:
        """
        Apply a group decision and return the gate to IDLE.

        Args:
            decision: Projected grant, or None for deny/timeout (covers nothing)
            request_id: Group the decision belongs to; None applies to
                whichever group is pending

        Returns:
            ReleaseOutcome, or None if there was nothing to release
        """
        if self._phase is GatePhase.IDLE:
            return None
        if request_id is not None and request_id != self._pending_request_id:
            logger.warning(
                f"Ignoring release for group {request_id}; "
                f"pending group is {self._pending_request_id}"
            )
            return None

        self._cancel_timer()
        outcome = ReleaseOutcome(request_id=self._pending_request_id)

        for kind in LIVE_KINDS:
            queue = self._queues[kind]
            was_empty = not queue
            for item in self._buffer.items(kind):
                if covers(decision, item):
                    outcome.covered.append(item)
                else:
                    queue.enqueue(item)
                    outcome.requeued.append(item)
            if was_empty and queue:
                outcome.reopened_kinds.append(kind)

        self._buffer.clear()
        self._phase = GatePhase.IDLE
        self._pending_request_id = None

        logger.info(
            f"Group request {outcome.request_id} released: "
            f"{len(outcome.covered)} covered, {len(outcome.requeued)} requeued"
        )
        return outcome

    def _arm_timer(self, request_id: str) -> None:
        self._cancel_timer()
        if self._on_timeout is None:
            return
        on_timeout = self._on_timeout

        async def _expire() -> None:
            await on_timeout(request_id)

        self._timer = GraceTimer(self._grace_seconds, _expire)
        self._timer.arm()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
