from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.request_context import request_id_ctx_var


class BookingError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"
    default_detail: str = "Booking request failed"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class SlotConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "slot_conflict"
    default_detail = "Time slot is already booked"


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Booking not found"


class ForbiddenError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_detail = "Admin access required"


class InvalidAttachmentError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_attachment"
    default_detail = "Only image files are allowed"


class InvalidStatusTransitionError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_status_transition"
    default_detail = "Booking status transition is not allowed"


class BookingValidationError(BookingError):
    status_code = 422
    code = "booking_validation_error"
    default_detail = "Booking data is invalid"


class TransientError(BookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transient_error"
    default_detail = "Storage is temporarily unavailable. Retry the request."

    def __init__(self, detail: str | None = None, retry_after: int = 1) -> None:
        super().__init__(detail=detail, headers={"Retry-After": str(retry_after)})


def _error_payload(code: str, message: str, detail):
    return {
        "error": {
            "code": code,
            "message": message,
            "detail": detail,
        },
        "detail": detail,
        "request_id": request_id_ctx_var.get(),
    }


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(
            code=getattr(exc, "code", f"http_{exc.status_code}"),
            message=str(exc.detail),
            detail=exc.detail,
        ),
        headers=exc.headers,
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=_error_payload(
            code="validation_error",
            message="Request validation failed",
            detail=jsonable_encoder(exc.errors()),
        ),
    )
