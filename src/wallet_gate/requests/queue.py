"""FIFO request queue with open/close effects."""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Generic, List, Optional, TypeVar

from .models import RequestKind

T = TypeVar("T")


@dataclass(frozen=True)
class EnqueueEffect:
    """
    Result of an enqueue.

    Attributes:
        kind: Queue the item went into
        opened: True if the queue was empty before the append; the caller
            must join the focus episode and open this kind's modal
    """

    kind: RequestKind
    opened: bool


@dataclass(frozen=True)
class AdvanceEffect(Generic[T]):
    """
    Result of an advance.

    Attributes:
        kind: Queue that was advanced
        removed: Head item that was removed (None if the queue was empty)
        closed: True if an item was removed and the queue is now empty; the
            caller must close this kind's modal and leave the focus episode
    """

    kind: RequestKind
    removed: Optional[T]
    closed: bool


class RequestQueue(Generic[T]):
    """
    Pure sequencing queue for one capability kind.

    The queue carries no approval semantics: the caller resolves the head
    item with the wallet engine before calling ``advance``.
    """

    def __init__(self, kind: RequestKind):
        self.kind = kind
        self._items: Deque[T] = deque()

    def enqueue(self, item: T) -> EnqueueEffect:
        was_empty = not self._items
        self._items.append(item)
        return EnqueueEffect(kind=self.kind, opened=was_empty)

    def advance(self) -> AdvanceEffect[T]:
        """Remove the head item. Advancing an empty queue is a no-op."""
        if not self._items:
            return AdvanceEffect(kind=self.kind, removed=None, closed=False)
        removed = self._items.popleft()
        return AdvanceEffect(kind=self.kind, removed=removed, closed=not self._items)

    def head(self) -> Optional[T]:
        return self._items[0] if self._items else None

    def peek_all(self) -> List[T]:
        return list(self._items)

    def drain(self) -> List[T]:
        """Remove and return every item, preserving order."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"RequestQueue(kind={self.kind.value}, size={len(self._items)})"
