"""Bounded in-memory collections.

Every cache and ledger in the engine is backed by one of these two
structures so that the capacity invariant is enforced in one place:

* ``BoundedBuffer``: FIFO ring buffer. Appending beyond capacity evicts the
  oldest item first.
* ``LRUCache``: key/value map evicting the least recently used key.

Both guard mutation with a lock so size-cap enforcement is atomic even
when writers come from several threads.
"""

import threading
from collections import OrderedDict, deque
from typing import Callable, Deque, Generic, Hashable, Iterable, Iterator, List, Optional, Tuple, TypeVar

from .exceptions import ValidationError

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedBuffer(Generic[T]):
    """Thread-safe FIFO ring buffer with a fixed capacity.

    Example:
        >>> buffer = BoundedBuffer[int](capacity=2)
        >>> buffer.append(1); buffer.append(2); buffer.append(3)
        1
        >>> buffer.snapshot()
        [2, 3]
    """

    def __init__(self, capacity: int, items: Optional[Iterable[T]] = None) -> None:
        if capacity <= 0:
            raise ValidationError(
                f"Buffer capacity must be positive, got {capacity}",
                code="INVALID_CAPACITY",
            )
        self._capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._total_appended = 0
        if items is not None:
            self.extend(items)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total_appended(self) -> int:
        """Number of items ever appended, including evicted ones."""
        return self._total_appended

    def append(self, item: T) -> Optional[T]:
        """Append an item at the newest end.

        Returns:
            The evicted (oldest) item, or None if nothing was evicted
        """
        with self._lock:
            evicted = self._items[0] if len(self._items) == self._capacity else None
            self._items.append(item)
            self._total_appended += 1
            return evicted

    def prepend(self, item: T) -> Optional[T]:
        """Insert an item at the front, evicting from the back when full.

        Used by newest-first ledgers: the front holds the most recent item,
        so the evicted item is always the oldest one.
        """
        with self._lock:
            evicted = self._items[-1] if len(self._items) == self._capacity else None
            self._items.appendleft(item)
            self._total_appended += 1
            return evicted

    def extend(self, items: Iterable[T]) -> None:
        """Append several items in order."""
        with self._lock:
            for item in items:
                self._items.append(item)
                self._total_appended += 1

    def remove_where(self, predicate: Callable[[T], bool]) -> int:
        """Remove every item matching ``predicate``.

        Returns:
            Number of removed items
        """
        with self._lock:
            kept = [item for item in self._items if not predicate(item)]
            removed = len(self._items) - len(kept)
            self._items = deque(kept, maxlen=self._capacity)
            return removed

    def replace(self, items: Iterable[T]) -> None:
        """Replace the contents, keeping at most ``capacity`` leading items."""
        with self._lock:
            self._items = deque(maxlen=self._capacity)
            for item in items:
                if len(self._items) == self._capacity:
                    break
                self._items.append(item)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def snapshot(self) -> List[T]:
        """Return a list copy of the current contents (oldest append first)."""
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())

    def __bool__(self) -> bool:
        return len(self._items) > 0

    def __repr__(self) -> str:
        return f"BoundedBuffer(size={len(self)}, capacity={self._capacity})"


class LRUCache(Generic[K, V]):
    """Thread-safe least-recently-used key/value cache."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValidationError(
                f"Cache capacity must be positive, got {capacity}",
                code="INVALID_CAPACITY",
            )
        self._capacity = capacity
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            if key not in self._data:
                return default
            self._data.move_to_end(key)
            return self._data[key]

    def peek(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """Read without refreshing recency."""
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: K, value: V) -> Optional[Tuple[K, V]]:
        """Insert or refresh a key.

        Returns:
            The evicted (key, value) pair, or None
        """
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = value
            if len(self._data) > self._capacity:
                return self._data.popitem(last=False)
            return None

    def pop(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            return self._data.pop(key, default)

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._data.keys())

    def items(self) -> List[Tuple[K, V]]:
        with self._lock:
            return list(self._data.items())

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"LRUCache(size={len(self)}, capacity={self._capacity})"
