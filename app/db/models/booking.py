from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "BookingStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


class Equipment(str, Enum):
    INCLUDED = "included"
    OWN = "own"


ACTIVE_BOOKING_CLAUSE = text("status <> 'cancelled'")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # at most one non-cancelled booking per (date, slot)
        Index(
            "uq_bookings_active_date_slot",
            "booking_date",
            "time_slot",
            unique=True,
            postgresql_where=ACTIVE_BOOKING_CLAUSE,
            sqlite_where=ACTIVE_BOOKING_CLAUSE,
        ),
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="ck_bookings_status"),
        CheckConstraint("equipment IN ('included', 'own')", name="ck_bookings_equipment"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time_slot: Mapped[str] = mapped_column(String(11), nullable=False)
    number_of_players: Mapped[int] = mapped_column(Integer, nullable=False)
    equipment: Mapped[str] = mapped_column(String(20), nullable=False, default=Equipment.INCLUDED.value)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_receipt: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    owner = relationship("User", back_populates="bookings")

    @property
    def current_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    def transition_to(self, target: BookingStatus) -> None:
        self.status = target.value
        if target is BookingStatus.CANCELLED:
            self.cancelled_at = datetime.now(UTC)
