from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.exceptions import TransientError
from app.db.models import Booking, BookingStatus
from app.services.slot_catalog import SlotCatalog, get_slot_catalog


@dataclass(frozen=True)
class Availability:
    booking_date: date
    free_slots: list[str] = field(default_factory=list)
    occupied_slots: list[str] = field(default_factory=list)


def resolve_availability(db: Session, booking_date: date, catalog: SlotCatalog | None = None) -> Availability:
    catalog = catalog or get_slot_catalog()
    try:
        booked = db.scalars(
            select(Booking.time_slot).where(
                Booking.booking_date == booking_date,
                Booking.status != BookingStatus.CANCELLED.value,
            )
        ).all()
    except OperationalError:
        db.rollback()
        raise TransientError() from None

    occupied = sorted(set(booked), key=lambda slot_id: (catalog.order_of(slot_id), slot_id))
    occupied_set = set(occupied)
    free = [slot_id for slot_id in catalog.ids() if slot_id not in occupied_set]
    return Availability(booking_date=booking_date, free_slots=free, occupied_slots=occupied)
