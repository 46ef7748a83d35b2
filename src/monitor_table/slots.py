"""Generation-tagged slot storage for table rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterator, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RowKey:
    """Handle to a stored row.

    A key matches a slot only while the slot's generation equals the key's,
    so a key kept after its row was removed never resolves to a later row
    placed in the same slot.
    """

    index: int
    generation: int


class _Slot:
    __slots__ = ("generation", "occupied", "value")

    def __init__(self) -> None:
        self.generation = 0
        self.occupied = False
        self.value: Any = None


class SlotStore(Generic[T]):
    """Arena with O(1) insert, lookup and removal.

    Vacated slots go on a free list and are reused by later inserts with a
    bumped generation. Not thread-safe on its own; Table wraps it in a lock.
    """

    def __init__(self) -> None:
        self._slots: list[_Slot] = []
        self._free: list[int] = []
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def __contains__(self, key: object) -> bool:
        return isinstance(key, RowKey) and self._live_slot(key) is not None

    def _live_slot(self, key: RowKey) -> _Slot | None:
        if key.index < 0 or key.index >= len(self._slots):
            return None
        slot = self._slots[key.index]
        if not slot.occupied or slot.generation != key.generation:
            return None
        return slot

    def insert(self, value: T) -> RowKey:
        """Store a value and return its key."""
        if self._free:
            index = self._free.pop()
            slot = self._slots[index]
        else:
            index = len(self._slots)
            slot = _Slot()
            self._slots.append(slot)

        slot.occupied = True
        slot.value = value
        self._count += 1
        return RowKey(index=index, generation=slot.generation)

    def get(self, key: RowKey) -> T | None:
        """Return the value for key, or None if the key is stale or vacant."""
        slot = self._live_slot(key)
        if slot is None:
            return None
        return slot.value

    # Stored values are ordinary Python objects, so a lookup already hands
    # out a mutable reference.
    get_mut = get

    def replace(self, key: RowKey, value: T) -> T | None:
        """Swap the value behind a live key, returning the old one."""
        slot = self._live_slot(key)
        if slot is None:
            return None
        old = slot.value
        slot.value = value
        return old

    def remove(self, key: RowKey) -> T | None:
        """Remove and return the value for key; None if already gone."""
        slot = self._live_slot(key)
        if slot is None:
            return None

        value = slot.value
        slot.value = None
        slot.occupied = False
        slot.generation += 1
        self._free.append(key.index)
        self._count -= 1
        return value

    def items(self) -> Iterator[tuple[RowKey, T]]:
        """Yield (key, value) for every stored value, in no particular order.

        Each call starts a fresh pass over the slots.
        """
        for index, slot in enumerate(self._slots):
            if slot.occupied:
                yield RowKey(index=index, generation=slot.generation), slot.value

    def keys(self) -> Iterator[RowKey]:
        for key, _value in self.items():
            yield key

    iterate = items
