import logging

from fastapi import APIRouter, Depends, HTTPException

from devevent.errors import DomainError
from devevent.routers.events import get_booking_service
from devevent.routers.http_errors import http_error
from devevent.schemas.booking import BookingCreate, BookingOut
from devevent.services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("/", response_model=BookingOut, status_code=201)
def create_booking(
    booking_data: BookingCreate,
    booking_service: BookingService = Depends(get_booking_service),
):
    """Book an email onto an event"""
    try:
        return booking_service.create_booking(booking_data.eventId, booking_data.email)
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Booking failed for event %s", booking_data.eventId)
        raise HTTPException(status_code=500, detail="Booking failed")
