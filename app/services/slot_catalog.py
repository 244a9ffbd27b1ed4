"""Fixed daily time windows that can be booked."""

from dataclasses import dataclass
from datetime import time
from functools import lru_cache

from app.core.config import settings

SLOT_ID_SEPARATOR = "-"


@dataclass(frozen=True)
class TimeWindow:
    slot_id: str
    start: time
    end: time


def parse_slot_id(slot_id: str) -> TimeWindow:
    """Parse ``"HH:MM-HH:MM"`` into a window; raises ValueError on bad input."""
    try:
        start_raw, end_raw = slot_id.split(SLOT_ID_SEPARATOR)
        start = time.fromisoformat(start_raw.strip())
        end = time.fromisoformat(end_raw.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid time slot {slot_id!r}, expected HH:MM-HH:MM") from exc
    if end <= start:
        raise ValueError(f"Time slot {slot_id!r} must end after it starts")
    return TimeWindow(slot_id=slot_id, start=start, end=end)


class SlotCatalog:
    def __init__(self, slot_ids: list[str]) -> None:
        if not slot_ids:
            raise ValueError("Slot catalog must contain at least one time slot")

        windows = [parse_slot_id(slot_id) for slot_id in slot_ids]
        for previous, current in zip(windows, windows[1:]):
            if current.start < previous.end:
                raise ValueError(
                    f"Time slot {current.slot_id!r} overlaps or precedes {previous.slot_id!r}"
                )
        self._windows = tuple(windows)
        self._ids = tuple(window.slot_id for window in windows)

    @property
    def windows(self) -> tuple[TimeWindow, ...]:
        return self._windows

    def ids(self) -> list[str]:
        return list(self._ids)

    def contains(self, slot_id: str) -> bool:
        return slot_id in self._ids

    def order_of(self, slot_id: str) -> int:
        try:
            return self._ids.index(slot_id)
        except ValueError:
            return len(self._ids)


@lru_cache(maxsize=8)
def _catalog_for(slot_ids: tuple[str, ...]) -> SlotCatalog:
    return SlotCatalog(list(slot_ids))


def get_slot_catalog() -> SlotCatalog:
    return _catalog_for(tuple(settings.slot_catalog))
