"""Booking lookup endpoint for the manage-booking page."""

from fastapi import APIRouter, Depends

from tourbook.models import Booking, BookingError, ErrorCode, ErrorResponse
from tourbook.services import BookingStore

from tourbook_api.dependencies import get_bookings

router = APIRouter(tags=["bookings"])


@router.get(
    "/bookings/{session_id}",
    summary="Get booking by checkout session",
    description="Return the booking recorded for a Checkout session, including its status.",
    response_model=Booking,
    responses={404: {"description": "No booking for this session", "model": ErrorResponse}},
)
async def get_booking(
    session_id: str,
    bookings: BookingStore = Depends(get_bookings),
) -> Booking:
    booking = bookings.get(session_id)
    if booking is None:
        raise BookingError(
            code=ErrorCode.BOOKING_NOT_FOUND,
            details={"session_id": session_id},
        )
    return booking
