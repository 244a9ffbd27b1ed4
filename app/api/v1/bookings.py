from datetime import date

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_roles
from app.api.pagination import LimitParam, OffsetParam
from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.db.models import BookingStatus, User, UserRole
from app.db.session import get_db
from app.schemas.booking import (
    AvailabilityResponse,
    BookingCancelResponse,
    BookingCreateRequest,
    BookingResponse,
    BookingStatusUpdateRequest,
    BookingUpdateRequest,
    BookingWithOwnerResponse,
    ReceiptUploadResponse,
    SlotCatalogResponse,
)
from app.services.artifact_store import ArtifactStore, get_artifact_store, media_type_for
from app.services.availability_service import resolve_availability
from app.services.booking_service import (
    attach_receipt,
    cancel_booking,
    create_booking,
    get_booking,
    list_all_bookings,
    list_own_bookings,
    reschedule_booking,
    set_booking_status,
)
from app.services.slot_catalog import get_slot_catalog

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_my_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    bookings = list_own_bookings(
        db=db,
        caller=current_user,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
    )
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/all", response_model=list[BookingWithOwnerResponse], status_code=status.HTTP_200_OK)
def list_every_booking(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    booking_date: date | None = Query(default=None, alias="date"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[BookingWithOwnerResponse]:
    rows = list_all_bookings(
        db=db,
        caller=current_user,
        status_filter=status_filter,
        booking_date=booking_date,
        limit=limit,
        offset=offset,
    )
    return [
        BookingWithOwnerResponse(
            **BookingResponse.model_validate(booking).model_dump(),
            first_name=owner.first_name,
            last_name=owner.last_name,
            email=owner.email,
            phone=owner.phone,
        )
        for booking, owner in rows
    ]


@router.get("/slots", response_model=SlotCatalogResponse, status_code=status.HTTP_200_OK)
def get_slots() -> SlotCatalogResponse:
    return SlotCatalogResponse(slots=get_slot_catalog().ids())


@router.get(
    "/availability/{booking_date}",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
def get_availability(booking_date: date, db: Session = Depends(get_db)) -> AvailabilityResponse:
    availability = resolve_availability(db=db, booking_date=booking_date)
    return AvailabilityResponse(
        date=availability.booking_date,
        free_slots=availability.free_slots,
        occupied_slots=availability.occupied_slots,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_new_booking(
    payload: BookingCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = create_booking(
        db=db,
        owner=current_user,
        booking_date=payload.booking_date,
        time_slot=payload.time_slot,
        number_of_players=payload.number_of_players,
        equipment=payload.equipment,
        total_price=payload.total_price,
    )
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def get_booking_by_id(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    return BookingResponse.model_validate(get_booking(db=db, booking_id=booking_id, caller=current_user))


@router.patch("/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def update_booking(
    booking_id: int,
    payload: BookingUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = reschedule_booking(
        db=db,
        booking_id=booking_id,
        caller=current_user,
        booking_date=payload.booking_date,
        time_slot=payload.time_slot,
        number_of_players=payload.number_of_players,
        equipment=payload.equipment,
        total_price=payload.total_price,
    )
    return BookingResponse.model_validate(booking)


@router.delete("/{booking_id}", response_model=BookingCancelResponse, status_code=status.HTTP_200_OK)
def cancel_existing_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingCancelResponse:
    booking = cancel_booking(db=db, booking_id=booking_id, caller=current_user)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking=BookingResponse.model_validate(booking),
    )


@router.patch("/{booking_id}/status", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def update_booking_status(
    booking_id: int,
    payload: BookingStatusUpdateRequest,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = set_booking_status(db=db, booking_id=booking_id, new_status=payload.status, caller=current_user)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/receipt", response_model=ReceiptUploadResponse, status_code=status.HTTP_200_OK)
def upload_receipt(
    booking_id: int,
    receipt: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
) -> ReceiptUploadResponse:
    # one byte past the ceiling is enough to reject an oversize upload
    data = receipt.file.read(settings.receipt_max_bytes + 1)
    reference, booking = attach_receipt(
        db=db,
        booking_id=booking_id,
        caller=current_user,
        data=data,
        content_type=receipt.content_type,
        store=store,
    )
    return ReceiptUploadResponse(
        message="Receipt uploaded successfully",
        filename=reference,
        booking=BookingResponse.model_validate(booking),
    )


@router.get("/{booking_id}/receipt", status_code=status.HTTP_200_OK)
def download_receipt(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
) -> FileResponse:
    booking = get_booking(db=db, booking_id=booking_id, caller=current_user)
    if not booking.payment_receipt:
        raise NotFoundError("Receipt not found")

    path = store.path_for(booking.payment_receipt)
    return FileResponse(
        path,
        media_type=media_type_for(path.name),
        filename=path.name,
        content_disposition_type="attachment",
        headers={"X-Content-Type-Options": "nosniff"},
    )
