"""Permission arbitration engine.

Single entry point for every trigger that touches the request queues: the
five wallet engine callbacks, queue advances from the UI, group grant/deny,
and grace-timer expiry. Each trigger performs its state transition
synchronously (so it cannot interleave with another trigger on the event
loop), then dispatches the resulting UI and focus effects in order under one
lock.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Set

from loguru import logger

from .audit import AuditEvent, AuditLogger, get_audit_logger
from .config import Config
from .focus import FocusCoordinator, HostWindow
from .governance.decision import GrantDecision, project
from .governance.group_gate import GatePhase, GroupGate, ReleaseOutcome
from .requests.models import (
    LIVE_KINDS,
    REQUEST_TYPES,
    GroupRequest,
    LiveRequest,
    Request,
    RequestKind,
)
from .requests.queue import RequestQueue

Handler = Callable[[Any], Awaitable[None]]

# Wallet engine callback names and the stream each one feeds.
CALLBACK_EVENTS: Dict[str, RequestKind] = {
    "onBasketAccessRequested": RequestKind.BASKET,
    "onCertificateAccessRequested": RequestKind.CERTIFICATE,
    "onProtocolPermissionRequested": RequestKind.PROTOCOL,
    "onSpendingAuthorizationRequested": RequestKind.SPENDING,
    "onGroupedPermissionRequested": RequestKind.GROUP,
}


class PermissionsManager(Protocol):
    """Subset of the wallet permissions engine used by the arbitration engine."""

    def bind_callback(self, event_name: str, handler: Handler) -> Any:
        """Subscribe a handler to a permission request event."""

    async def grant_grouped_permission(self, request_id: str, granted: Any) -> Any:
        """Grant a grouped permission request."""

    async def deny_grouped_permission(self, request_id: str) -> Any:
        """Deny a grouped permission request."""

    async def revoke_permission(self, token: Any) -> Any:
        """Revoke a previously granted permission token."""


class ModalSurface(Protocol):
    """UI surface that shows one approval modal per request kind."""

    def set_modal_open(self, kind: RequestKind, is_open: bool) -> Any:
        """Open or close the modal for a kind (may return an awaitable)."""


class EffectAction(str, Enum):
    BEGIN_FOCUS = "begin_focus"
    END_FOCUS = "end_focus"
    OPEN_MODAL = "open_modal"
    CLOSE_MODAL = "close_modal"


@dataclass(frozen=True)
class Effect:
    action: EffectAction
    kind: Optional[RequestKind] = None


class ArbitrationEngine:
    """
    Sequences individual and grouped permission requests for one wallet session.

    Features:
    - One FIFO queue per capability kind plus a queue of group requests
    - Group gate that parks individual requests while a group is pending
    - Coverage check that drops requests already authorized by a group grant
    - Session-wide focus episode shared by all kinds

    All collaborators are injected; nothing is stored on module globals.
    """

    def __init__(
        self,
        permissions_manager: PermissionsManager,
        window: HostWindow,
        surface: ModalSurface,
        grace_ms: Optional[int] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._permissions = permissions_manager
        self._surface = surface
        self._audit = audit if audit is not None else get_audit_logger()

        self._queues: Dict[RequestKind, RequestQueue] = {
            kind: RequestQueue(kind) for kind in LIVE_KINDS
        }
        self._group_queue: RequestQueue[GroupRequest] = RequestQueue(RequestKind.GROUP)
        self._focus = FocusCoordinator(window)
        self._gate = GroupGate(
            self._queues,
            grace_seconds=Config.grace_seconds(grace_ms),
            on_timeout=self._on_grace_timeout,
        )
        # Groups answered (or expired) that may still sit at the head of the
        # group queue until the UI advances past them.
        self._settled_groups: Set[str] = set()
        self._effects_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def phase(self) -> GatePhase:
        return self._gate.phase

    @property
    def pending_group_id(self) -> Optional[str]:
        return self._gate.pending_request_id

    @property
    def focus(self) -> FocusCoordinator:
        return self._focus

    def requests(self, kind: RequestKind) -> List[Request]:
        """Requests currently shown (or waiting to be shown) for a kind."""
        return self._queue_for(kind).peek_all()

    def deferred(self, kind: RequestKind) -> List[LiveRequest]:
        """Requests parked behind the pending group for a kind."""
        return self._gate.buffer.items(kind)

    def pending_count(self) -> int:
        """Individual requests admitted and not yet resolved or discarded."""
        live = sum(len(queue) for queue in self._queues.values())
        return live + self._gate.buffer.total()

    # ------------------------------------------------------------------
    # Wallet engine callbacks
    # ------------------------------------------------------------------

    def callbacks(self) -> Dict[str, Handler]:
        """Map each wallet engine event name to its handler."""
        handlers: Dict[RequestKind, Handler] = {
            RequestKind.BASKET: self.on_basket_access_requested,
            RequestKind.CERTIFICATE: self.on_certificate_access_requested,
            RequestKind.PROTOCOL: self.on_protocol_permission_requested,
            RequestKind.SPENDING: self.on_spending_authorization_requested,
            RequestKind.GROUP: self.on_grouped_permission_requested,
        }
        return {name: handlers[kind] for name, kind in CALLBACK_EVENTS.items()}

    def bind(self) -> None:
        """Subscribe every request handler on the permissions manager."""
        for event_name, handler in self.callbacks().items():
            self._permissions.bind_callback(event_name, handler)
        logger.info(f"Bound {len(CALLBACK_EVENTS)} permission request callbacks")

    async def on_basket_access_requested(self, payload: Any) -> None:
        await self._admit(RequestKind.BASKET, payload)

    async def on_certificate_access_requested(self, payload: Any) -> None:
        await self._admit(RequestKind.CERTIFICATE, payload)

    async def on_protocol_permission_requested(self, payload: Any) -> None:
        await self._admit(RequestKind.PROTOCOL, payload)

    async def on_spending_authorization_requested(self, payload: Any) -> None:
        await self._admit(RequestKind.SPENDING, payload)

    async def on_grouped_permission_requested(self, payload: Any) -> None:
        group = GroupRequest.from_payload(payload)
        if group is None:
            self._drop(RequestKind.GROUP, payload)
            return

        effects: List[Effect] = []
        if self._group_queue.enqueue(group).opened:
            effects.extend(self._open(RequestKind.GROUP))
        self._record(self._audit.log_request, AuditEvent.REQUEST_QUEUED, group)
        effects.extend(self._maybe_enter_gate())
        await self._dispatch(effects)

    # ------------------------------------------------------------------
    # UI operations
    # ------------------------------------------------------------------

    async def advance(self, kind: RequestKind) -> Optional[Request]:
        """
        Remove the head request of a queue after the UI resolved it.

        The caller resolves the request with the wallet engine first; this
        only sequences. Advancing an empty queue is a no-op.

        Args:
            kind: Queue to advance

        Returns:
            The removed request, or None if the queue was empty
        """
        queue = self._queue_for(kind)
        result = queue.advance()
        if result.removed is None:
            return None

        effects: List[Effect] = []
        if result.closed:
            effects.extend(self._close(kind))
        if kind is RequestKind.GROUP:
            self._settled_groups.discard(result.removed.request_id)
            effects.extend(self._maybe_enter_gate())

        await self._dispatch(effects)
        return result.removed

    async def advance_basket_queue(self) -> Optional[Request]:
        return await self.advance(RequestKind.BASKET)

    async def advance_certificate_queue(self) -> Optional[Request]:
        return await self.advance(RequestKind.CERTIFICATE)

    async def advance_protocol_queue(self) -> Optional[Request]:
        return await self.advance(RequestKind.PROTOCOL)

    async def advance_spending_queue(self) -> Optional[Request]:
        return await self.advance(RequestKind.SPENDING)

    async def advance_group_queue(self) -> Optional[Request]:
        return await self.advance(RequestKind.GROUP)

    async def grant_grouped_permission(self, request_id: str, granted: Any) -> Any:
        """
        Grant a group request and release the requests parked behind it.

        Args:
            request_id: Group request identifier
            granted: Payload describing what the user approved

        Returns:
            Whatever the wallet engine returned

        Raises:
            Exception: Any wallet engine failure, after the gate is released
                with a decision that covers nothing
        """
        try:
            result = await self._permissions.grant_grouped_permission(request_id, granted)
        except Exception as e:
            logger.error(f"Wallet engine failed to grant group {request_id}: {e}")
            await self._settle_group(request_id, None, AuditEvent.GROUP_GRANTED, error=str(e))
            raise

        await self._settle_group(request_id, project(granted), AuditEvent.GROUP_GRANTED)
        return result

    async def deny_grouped_permission(self, request_id: str) -> Any:
        """
        Deny a group request; every parked request returns to its queue.

        Raises:
            Exception: Any wallet engine failure, after the gate is released
        """
        try:
            result = await self._permissions.deny_grouped_permission(request_id)
        except Exception as e:
            logger.error(f"Wallet engine failed to deny group {request_id}: {e}")
            await self._settle_group(request_id, None, AuditEvent.GROUP_DENIED, error=str(e))
            raise

        await self._settle_group(request_id, None, AuditEvent.GROUP_DENIED)
        return result

    async def revoke_permission(self, token: Any) -> Any:
        """Revoke a granted permission through the wallet engine."""
        try:
            result = await self._permissions.revoke_permission(token)
        except Exception as e:
            logger.error(f"Wallet engine failed to revoke permission: {e}")
            raise
        self._record(self._audit.log, AuditEvent.PERMISSION_REVOKED, token=token)
        logger.info("Permission revoked")
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _queue_for(self, kind: RequestKind) -> RequestQueue:
        if kind is RequestKind.GROUP:
            return self._group_queue
        return self._queues[kind]

    async def _admit(self, kind: RequestKind, payload: Any) -> None:
        request = REQUEST_TYPES[kind].from_payload(payload)
        if request is None:
            self._drop(kind, payload)
            return

        effects: List[Effect] = []
        if self._gate.phase is GatePhase.PENDING:
            self._gate.defer(request)
            self._record(
                self._audit.log_request,
                AuditEvent.REQUEST_DEFERRED,
                request,
                self._gate.pending_request_id,
            )
        else:
            if self._queues[kind].enqueue(request).opened:
                effects.extend(self._open(kind))
            self._record(self._audit.log_request, AuditEvent.REQUEST_QUEUED, request)
            logger.debug(f"Queued {kind.value} request {request.request_id}")

        await self._dispatch(effects)

    def _drop(self, kind: RequestKind, payload: Any) -> None:
        request_id = None
        if isinstance(payload, Mapping) and payload.get("requestID") is not None:
            request_id = str(payload.get("requestID"))
        logger.warning(f"Dropping malformed {kind.value} request (requestID={request_id})")
        self._record(
            self._audit.log_dropped, kind.value, "malformed payload", request_id=request_id
        )

    def _open(self, kind: RequestKind) -> List[Effect]:
        effects = []
        if self._focus.activate(kind):
            effects.append(Effect(EffectAction.BEGIN_FOCUS))
        effects.append(Effect(EffectAction.OPEN_MODAL, kind))
        return effects

    def _close(self, kind: RequestKind) -> List[Effect]:
        effects = [Effect(EffectAction.CLOSE_MODAL, kind)]
        if self._focus.deactivate(kind):
            effects.append(Effect(EffectAction.END_FOCUS))
        return effects

    def _maybe_enter_gate(self) -> List[Effect]:
        """Enter PENDING for the group at the head of the group queue, if any."""
        head = self._group_queue.head()
        if head is None or self._gate.phase is GatePhase.PENDING:
            return []
        if head.request_id in self._settled_groups:
            return []

        drained = self._gate.enter(head)
        if drained is None:
            return []
        self._record(
            self._audit.log,
            AuditEvent.GROUP_PENDING,
            request_id=head.request_id,
            originator=head.originator,
            deferred=self._gate.buffer.total(),
        )

        effects = []
        for kind in LIVE_KINDS:
            effects.append(Effect(EffectAction.CLOSE_MODAL, kind))
            if kind in drained and self._focus.deactivate(kind):
                effects.append(Effect(EffectAction.END_FOCUS))
        return effects

    async def _settle_group(
        self,
        request_id: str,
        decision: Optional[GrantDecision],
        event: AuditEvent,
        error: Optional[str] = None,
    ) -> Optional[ReleaseOutcome]:
        if any(group.request_id == request_id for group in self._group_queue.peek_all()):
            self._settled_groups.add(request_id)

        outcome = self._gate.release(decision, request_id)
        effects: List[Effect] = []
        if outcome is None:
            logger.debug(f"Release for group {request_id} was a no-op")
        else:
            for kind in outcome.reopened_kinds:
                effects.extend(self._open(kind))

        effects.extend(self._maybe_enter_gate())

        if outcome is not None:
            self._record(self._audit_release, event, outcome, decision, error)
        await self._dispatch(effects)
        return outcome

    def _record(self, write: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        """Write an audit record, logging (not raising) file system errors."""
        try:
            write(*args, **kwargs)
        except OSError as e:
            logger.error(f"Failed to write audit record: {e}")

    def _audit_release(
        self,
        event: AuditEvent,
        outcome: ReleaseOutcome,
        decision: Optional[GrantDecision],
        error: Optional[str],
    ) -> None:
        self._audit.log_group_release(
            event,
            request_id=outcome.request_id,
            covered_ids=[item.request_id for item in outcome.covered],
            requeued_ids=[item.request_id for item in outcome.requeued],
            decision=decision.summary() if decision is not None else None,
            error=error,
        )
        for item in outcome.covered:
            self._audit.log_request(AuditEvent.REQUEST_COVERED, item, outcome.request_id)
        for item in outcome.requeued:
            self._audit.log_request(AuditEvent.REQUEST_REQUEUED, item, outcome.request_id)

    async def _on_grace_timeout(self, request_id: str) -> None:
        logger.warning(f"Group request {request_id} unanswered; releasing deferred requests")
        await self._settle_group(request_id, None, AuditEvent.GROUP_TIMEOUT)

    async def _dispatch(self, effects: List[Effect]) -> None:
        if not effects:
            return
        async with self._effects_lock:
            for effect in effects:
                await self._apply(effect)

    async def _apply(self, effect: Effect) -> None:
        try:
            if effect.action is EffectAction.BEGIN_FOCUS:
                await self._focus.begin_episode()
            elif effect.action is EffectAction.END_FOCUS:
                await self._focus.end_episode()
            else:
                is_open = effect.action is EffectAction.OPEN_MODAL
                result = self._surface.set_modal_open(effect.kind, is_open)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            logger.error(f"Failed to apply {effect.action.value} effect: {e}")
