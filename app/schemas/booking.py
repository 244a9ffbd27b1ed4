from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from app.db.models.booking import BookingStatus, Equipment


class BookingCreateRequest(BaseModel):
    booking_date: date
    time_slot: str = Field(min_length=1, max_length=11)
    number_of_players: int
    equipment: Equipment = Equipment.INCLUDED
    total_price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)


class BookingUpdateRequest(BaseModel):
    booking_date: date | None = None
    time_slot: str | None = Field(default=None, min_length=1, max_length=11)
    number_of_players: int | None = None
    equipment: Equipment | None = None
    total_price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def validate_not_empty(self) -> "BookingUpdateRequest":
        if all(getattr(self, name) is None for name in self.model_fields_set):
            raise ValueError("At least one field must be provided")
        return self


class BookingStatusUpdateRequest(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: int
    user_id: int
    booking_date: date
    time_slot: str
    number_of_players: int
    equipment: Equipment
    total_price: Decimal
    payment_receipt: str | None
    status: BookingStatus
    created_at: datetime
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}


class BookingWithOwnerResponse(BookingResponse):
    first_name: str
    last_name: str
    email: str
    phone: str | None


class BookingCancelResponse(BaseModel):
    message: str
    booking: BookingResponse


class ReceiptUploadResponse(BaseModel):
    message: str
    filename: str
    booking: BookingResponse


class AvailabilityResponse(BaseModel):
    date: date
    free_slots: list[str]
    occupied_slots: list[str]


class SlotCatalogResponse(BaseModel):
    slots: list[str]
