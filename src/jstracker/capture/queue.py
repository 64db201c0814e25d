"""Bounded FIFO buffer of records awaiting a debounced flush."""

from __future__ import annotations

from typing import Iterator, List

from .types import ErrorRecord


class ErrorQueue:
    """
    Append-only queue with a hard capacity.

    Rules
    -----
    - Records are kept in arrival order.
    - Once ``max_size`` records are held, further offers are refused; nothing
      already queued is evicted.
    - ``drain()`` hands back every record and leaves the queue empty.

    Usage example
    -------------
        q = ErrorQueue(max_size=16)
        if not q.offer(record):
            ...  # dropped at capacity
        batch = q.drain()
    """

    def __init__(self, max_size: int) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")
        self._max_size = max_size
        self._items: List[ErrorRecord] = []

    @property
    def max_size(self) -> int:
        return self._max_size

    def resize(self, max_size: int) -> int:
        """
        Change the cap and return how many records were dropped to fit it.

        Shrinking below the current length keeps the oldest ``max_size``
        records, the same ones ``offer`` would have admitted under that cap.
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")
        self._max_size = max_size
        dropped = len(self._items) - max_size
        if dropped <= 0:
            return 0
        del self._items[max_size:]
        return dropped

    def is_full(self) -> bool:
        return len(self._items) >= self._max_size

    def offer(self, record: ErrorRecord) -> bool:
        """Append ``record`` unless at capacity. Return True if it was queued."""
        if self.is_full():
            return False
        self._items.append(record)
        return True

    def drain(self) -> List[ErrorRecord]:
        """Return all queued records in arrival order and empty the queue."""
        items, self._items = self._items, []
        return items

    def snapshot(self) -> List[ErrorRecord]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ErrorRecord]:
        return iter(list(self._items))
