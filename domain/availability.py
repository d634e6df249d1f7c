"""Slot grid for availability display"""
from datetime import time
from typing import Iterable, Iterator, List

from domain.entities import Booking
from domain.value_objects import Slot, SLOT_MINUTES, shift_time, windows_overlap


class SlotGrid:
    """Fixed 30-minute slots between opening and closing time.

    Iterating walks the grid from scratch every time, so one grid can be
    consumed more than once and always reflects the bookings it was built
    with. A slot is only part of the grid when it ends at or before closing
    time, and it is occupied when any booking overlaps it (half-open rule).
    """

    def __init__(self, opening_time: time, closing_time: time, bookings: Iterable[Booking] = ()):
        self.opening_time = opening_time
        self.closing_time = closing_time
        self._bookings: List[Booking] = [b for b in bookings if b.occupies_slot]

    def __iter__(self) -> Iterator[Slot]:
        cursor = self.opening_time
        while True:
            slot_end = shift_time(cursor, SLOT_MINUTES)
            if slot_end is None or slot_end > self.closing_time:
                return
            yield Slot(
                start_time=cursor,
                end_time=slot_end,
                available=not self._is_occupied(cursor, slot_end),
            )
            cursor = slot_end

    def _is_occupied(self, slot_start: time, slot_end: time) -> bool:
        return any(
            windows_overlap(b.start_time, b.end_time, slot_start, slot_end)
            for b in self._bookings
        )

    def free_slots(self) -> List[Slot]:
        return [slot for slot in self if slot.available]
