import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from devevent.database.dynamodb import get_db_connection, get_table_name
from devevent.errors import DomainError, InvalidSlugError
from devevent.routers.http_errors import http_error
from devevent.schemas.booking import BookingOut
from devevent.schemas.event import EventCreate, EventOut, EventUpdate
from devevent.services.booking_service import BookingService
from devevent.services.event_service import EventService
from devevent.services.slugs import MAX_SLUG_LENGTH

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

SLUG_PATTERN = re.compile(r"^[a-z0-9_]+(?:-[a-z0-9_]+)*$")


def get_event_service():
    """Dependency to get EventService instance"""
    return EventService(get_db_connection(), get_table_name())


def get_booking_service():
    """Dependency to get BookingService instance"""
    return BookingService(get_db_connection(), get_table_name())


def _clean_slug(slug: str) -> str:
    slug = slug.strip().lower()
    if not slug or len(slug) > MAX_SLUG_LENGTH or not SLUG_PATTERN.match(slug):
        raise InvalidSlugError()
    return slug


@router.post("/", response_model=EventOut, status_code=201)
def create_event(
    event_data: EventCreate, event_service: EventService = Depends(get_event_service)
):
    """Create a new event with a unique slug derived from its title"""
    try:
        return event_service.create_event(event_data)
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Event creation failed")
        raise HTTPException(status_code=500, detail="Event creation failed")


@router.get("/", response_model=Dict[str, Any])
def list_events(
    limit: int = Query(50, ge=1, le=100, description="Number of results per page"),
    nextToken: Optional[str] = Query(
        None, description="Pagination token from previous response"
    ),
    event_service: EventService = Depends(get_event_service),
):
    """List events, newest first"""
    try:
        events, next_pagination_token = event_service.list_events(limit, nextToken)
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Failed to fetch events")
        raise HTTPException(status_code=500, detail="Failed to fetch events")

    response = {
        "events": [event.model_dump(mode="json") for event in events],
        "count": len(events),
        "limit": limit,
        "hasMore": next_pagination_token is not None,
    }

    if next_pagination_token:
        response["nextToken"] = next_pagination_token

    return response


@router.get("/{slug}", response_model=EventOut)
def get_event(slug: str, event_service: EventService = Depends(get_event_service)):
    """Fetch a single event by its slug"""
    try:
        return event_service.get_event_by_slug(_clean_slug(slug))
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Failed to fetch event %r", slug)
        raise HTTPException(status_code=500, detail="Failed to fetch event")


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    event_data: EventUpdate,
    event_service: EventService = Depends(get_event_service),
):
    """Update some fields of an event; a new title re-derives the slug"""
    try:
        return event_service.update_event(event_id, event_data)
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Failed to update event %s", event_id)
        raise HTTPException(status_code=500, detail="Failed to update event")


@router.get("/{slug}/similar", response_model=List[EventOut])
def similar_events(
    slug: str,
    limit: int = Query(3, ge=1, le=20, description="Maximum number of events"),
    event_service: EventService = Depends(get_event_service),
):
    """Events sharing a tag with the given one, newest first"""
    try:
        slug = _clean_slug(slug)
    except InvalidSlugError:
        # No event can hold a malformed slug, so there is nothing to recommend
        return []

    try:
        return event_service.find_similar(slug, limit)
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Failed to fetch events similar to %r", slug)
        raise HTTPException(status_code=500, detail="Failed to fetch similar events")


@router.get("/{event_id}/bookings", response_model=List[BookingOut])
def list_event_bookings(
    event_id: str, booking_service: BookingService = Depends(get_booking_service)
):
    """List bookings for an event, newest first"""
    try:
        return booking_service.list_bookings(event_id)
    except DomainError as e:
        raise http_error(e)
    except Exception:
        logger.exception("Failed to fetch bookings for event %s", event_id)
        raise HTTPException(status_code=500, detail="Failed to fetch bookings")
