import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    BookingValidationError,
    ForbiddenError,
    InvalidAttachmentError,
    InvalidStatusTransitionError,
    NotFoundError,
    SlotConflictError,
    TransientError,
)
from app.core.metrics import BOOKING_CONFLICTS
from app.db.models import Booking, BookingStatus, Equipment, User
from app.services.artifact_store import (
    ALLOWED_RECEIPT_TYPES,
    ArtifactStore,
    build_receipt_name,
    normalize_media_type,
)
from app.services.notifications import BookingEvent, notify_all, notify_owner
from app.services.slot_catalog import get_slot_catalog

logger = logging.getLogger(__name__)

SLOT_ALREADY_BOOKED_DETAIL = "Time slot is already booked"
UNKNOWN_SLOT_DETAIL = "Unknown time slot"
CANCELLED_BOOKING_DETAIL = "Cancelled bookings cannot be changed"
PRICE_QUANTUM = Decimal("0.01")


def _is_postgresql_session(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


@contextmanager
def _storage_guard(db: Session) -> Iterator[None]:
    try:
        yield
    except IntegrityError:
        db.rollback()
        BOOKING_CONFLICTS.inc()
        raise SlotConflictError(SLOT_ALREADY_BOOKED_DETAIL) from None
    except OperationalError:
        db.rollback()
        logger.warning("booking_storage_unavailable", exc_info=True)
        raise TransientError() from None


def calculate_total_price(number_of_players: int, equipment: Equipment) -> Decimal:
    per_player = settings.base_price_per_player
    if equipment == Equipment.INCLUDED:
        per_player += settings.equipment_fee_per_player
    return (per_player * number_of_players).quantize(PRICE_QUANTUM)


def _validate_schedule(time_slot: str | None, number_of_players: int | None) -> None:
    if time_slot is not None and not get_slot_catalog().contains(time_slot):
        raise BookingValidationError(UNKNOWN_SLOT_DETAIL)
    if number_of_players is not None and not (
        settings.min_players <= number_of_players <= settings.max_players
    ):
        raise BookingValidationError(
            f"Number of players must be between {settings.min_players} and {settings.max_players}"
        )


def _slot_taken(db: Session, booking_date: date, time_slot: str, exclude_booking_id: int | None = None) -> bool:
    query = select(Booking.id).where(
        Booking.booking_date == booking_date,
        Booking.time_slot == time_slot,
        Booking.status != BookingStatus.CANCELLED.value,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    return db.scalar(query.limit(1)) is not None


def _get_visible_booking(
    db: Session,
    booking_id: int,
    caller: User,
    allow_admin: bool,
    for_update: bool = False,
) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if for_update and _is_postgresql_session(db):
        query = query.with_for_update()

    booking = db.scalar(query)
    # a foreign booking looks exactly like a missing one
    if booking is None:
        raise NotFoundError()
    if booking.user_id != caller.id and not (allow_admin and caller.is_admin):
        raise NotFoundError()
    return booking


def create_booking(
    db: Session,
    owner: User,
    booking_date: date,
    time_slot: str,
    number_of_players: int,
    equipment: Equipment,
    total_price: Decimal | None = None,
) -> Booking:
    _validate_schedule(time_slot, number_of_players)
    if total_price is None:
        total_price = calculate_total_price(number_of_players, equipment)

    with _storage_guard(db):
        if _slot_taken(db, booking_date, time_slot):
            db.rollback()
            BOOKING_CONFLICTS.inc()
            raise SlotConflictError(SLOT_ALREADY_BOOKED_DETAIL)

        booking = Booking(
            user_id=owner.id,
            booking_date=booking_date,
            time_slot=time_slot,
            number_of_players=number_of_players,
            equipment=Equipment(equipment).value,
            total_price=total_price,
            status=BookingStatus.PENDING.value,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)

    logger.info(
        "booking_created id=%s user_id=%s date=%s slot=%s",
        booking.id,
        booking.user_id,
        booking.booking_date,
        booking.time_slot,
    )
    notify_all(BookingEvent.CREATED, "New booking created", booking)
    return booking


def reschedule_booking(
    db: Session,
    booking_id: int,
    caller: User,
    booking_date: date | None = None,
    time_slot: str | None = None,
    number_of_players: int | None = None,
    equipment: Equipment | None = None,
    total_price: Decimal | None = None,
) -> Booking:
    _validate_schedule(time_slot, number_of_players)

    with _storage_guard(db):
        booking = _get_visible_booking(db, booking_id, caller, allow_admin=True, for_update=True)
        if booking.current_status is BookingStatus.CANCELLED:
            db.rollback()
            raise InvalidStatusTransitionError(CANCELLED_BOOKING_DETAIL)

        target_date = booking_date if booking_date is not None else booking.booking_date
        target_slot = time_slot if time_slot is not None else booking.time_slot
        moves = (target_date, target_slot) != (booking.booking_date, booking.time_slot)
        if moves and _slot_taken(db, target_date, target_slot, exclude_booking_id=booking.id):
            db.rollback()
            BOOKING_CONFLICTS.inc()
            raise SlotConflictError(SLOT_ALREADY_BOOKED_DETAIL)

        booking.booking_date = target_date
        booking.time_slot = target_slot
        if number_of_players is not None:
            booking.number_of_players = number_of_players
        if equipment is not None:
            booking.equipment = Equipment(equipment).value
        if total_price is not None:
            booking.total_price = total_price
        db.commit()
        db.refresh(booking)

    logger.info(
        "booking_updated id=%s by_user_id=%s date=%s slot=%s",
        booking.id,
        caller.id,
        booking.booking_date,
        booking.time_slot,
    )
    notify_owner(BookingEvent.UPDATED, "Booking updated", booking)
    return booking


def cancel_booking(db: Session, booking_id: int, caller: User) -> Booking:
    with _storage_guard(db):
        booking = _get_visible_booking(db, booking_id, caller, allow_admin=False, for_update=True)
        if booking.current_status is BookingStatus.CANCELLED:
            db.rollback()
            return booking

        booking.transition_to(BookingStatus.CANCELLED)
        db.commit()
        db.refresh(booking)

    logger.info("booking_cancelled id=%s user_id=%s", booking.id, booking.user_id)
    notify_owner(BookingEvent.CANCELLED, "Booking cancelled", booking)
    return booking


def set_booking_status(db: Session, booking_id: int, new_status: BookingStatus, caller: User) -> Booking:
    if not caller.is_admin:
        raise ForbiddenError()

    new_status = BookingStatus(new_status)
    with _storage_guard(db):
        booking = _get_visible_booking(db, booking_id, caller, allow_admin=True, for_update=True)
        current = booking.current_status
        if not current.can_transition_to(new_status):
            db.rollback()
            raise InvalidStatusTransitionError(
                f"Cannot change booking status from {current.value} to {new_status.value}"
            )

        booking.transition_to(new_status)
        db.commit()
        db.refresh(booking)

    logger.info(
        "booking_status_updated id=%s from=%s to=%s admin_id=%s",
        booking.id,
        current.value,
        new_status.value,
        caller.id,
    )
    notify_owner(BookingEvent.STATUS_UPDATED, f"Booking status updated to {new_status.value}", booking)
    return booking


def validate_receipt(content_type: str | None, size: int) -> None:
    if normalize_media_type(content_type) not in ALLOWED_RECEIPT_TYPES:
        raise InvalidAttachmentError("Only PNG, JPEG, WebP or GIF images are allowed")
    if size == 0:
        raise InvalidAttachmentError("Uploaded file is empty")
    if size > settings.receipt_max_bytes:
        raise InvalidAttachmentError(
            f"Receipt exceeds the maximum size of {settings.receipt_max_bytes} bytes"
        )


def attach_receipt(
    db: Session,
    booking_id: int,
    caller: User,
    data: bytes,
    content_type: str | None,
    store: ArtifactStore,
) -> tuple[str, Booking]:
    validate_receipt(content_type, len(data))

    with _storage_guard(db):
        _get_visible_booking(db, booking_id, caller, allow_admin=False)
        # release the read transaction before the artifact write
        db.commit()

    reference = store.save(data, build_receipt_name(content_type))
    try:
        with _storage_guard(db):
            booking = _get_visible_booking(db, booking_id, caller, allow_admin=False, for_update=True)
            previous_reference = booking.payment_receipt
            booking.payment_receipt = reference
            db.commit()
            db.refresh(booking)
    except Exception:
        store.delete(reference)
        raise

    if previous_reference and previous_reference != reference:
        store.delete(previous_reference)

    logger.info("receipt_uploaded booking_id=%s reference=%s", booking.id, reference)
    notify_owner(BookingEvent.RECEIPT_UPLOADED, "Payment receipt uploaded", booking)
    return reference, booking


def get_booking(db: Session, booking_id: int, caller: User) -> Booking:
    with _storage_guard(db):
        return _get_visible_booking(db, booking_id, caller, allow_admin=True)


def list_own_bookings(
    db: Session,
    caller: User,
    status_filter: BookingStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Booking]:
    query = select(Booking).where(Booking.user_id == caller.id)
    if status_filter:
        query = query.where(Booking.status == status_filter.value)
    query = query.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(limit).offset(offset)
    with _storage_guard(db):
        return list(db.scalars(query).all())


def list_all_bookings(
    db: Session,
    caller: User,
    status_filter: BookingStatus | None = None,
    booking_date: date | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[tuple[Booking, User]]:
    if not caller.is_admin:
        raise ForbiddenError()

    query = select(Booking, User).join(User, Booking.user_id == User.id)
    if status_filter:
        query = query.where(Booking.status == status_filter.value)
    if booking_date:
        query = query.where(Booking.booking_date == booking_date)
    query = query.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(limit).offset(offset)
    with _storage_guard(db):
        return [(booking, owner) for booking, owner in db.execute(query).all()]
