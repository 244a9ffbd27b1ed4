import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fastapi.encoders import jsonable_encoder

from app.core import broadcast
from app.core.metrics import BOOKING_EVENTS, PUSH_FAILURES
from app.db.models import Booking
from app.schemas.booking import BookingResponse

logger = logging.getLogger(__name__)


class BookingEvent(str, Enum):
    CREATED = "new_booking"
    UPDATED = "booking_updated"
    CANCELLED = "booking_cancelled"
    STATUS_UPDATED = "booking_status_updated"
    RECEIPT_UPLOADED = "receipt_uploaded"


def build_event(event: BookingEvent, message: str, booking: Booking) -> dict[str, Any]:
    return {
        "event": event.value,
        "message": message,
        "booking": jsonable_encoder(BookingResponse.model_validate(booking)),
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _publish(topic: str, event_name: str, payload: dict[str, Any]) -> None:
    BOOKING_EVENTS.labels(event=event_name).inc()
    try:
        broadcast.broadcaster.publish(topic, payload)
    except Exception:
        PUSH_FAILURES.labels(event=event_name).inc()
        logger.exception("push_publish_failed event=%s topic=%s", event_name, topic)


def broadcast_all(event_name: str, payload: dict[str, Any]) -> None:
    _publish(broadcast.ALL_TOPIC, event_name, payload)


def broadcast_to_owner(owner_id: int, event_name: str, payload: dict[str, Any]) -> None:
    _publish(broadcast.owner_topic(owner_id), event_name, payload)


def notify_all(event: BookingEvent, message: str, booking: Booking) -> None:
    broadcast_all(event.value, build_event(event, message, booking))


def notify_owner(event: BookingEvent, message: str, booking: Booking) -> None:
    # recipient is always the booking owner, never the acting user
    broadcast_to_owner(booking.user_id, event.value, build_event(event, message, booking))
