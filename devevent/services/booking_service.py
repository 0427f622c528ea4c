import logging
import uuid
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from devevent.database.dynamodb import (
    DEFAULT_TABLE_NAME,
    cancellation_reasons,
    condition_failed,
    store_errors,
)
from devevent.errors import (
    ConstraintViolationError,
    DuplicateBookingError,
    EventNotFoundError,
    MissingFieldError,
)
from devevent.schemas.booking import BookingOut
from devevent.services.event_service import EventService, iso_timestamp, utc_now
from devevent.services.normalize import normalize_email

logger = logging.getLogger(__name__)

# Position of items in the booking transaction
EVENT_CHECK_ITEM = 0
BOOKING_ITEM = 1


class BookingService:
    def __init__(self, dynamodb_resource, table_name=DEFAULT_TABLE_NAME, now=utc_now):
        self.dynamodb = dynamodb_resource
        self.table = dynamodb_resource.Table(table_name)
        self.event_service = EventService(dynamodb_resource, table_name, now=now)
        self.now = now

    def create_booking(self, event_id: str, email: str) -> BookingOut:
        """
        Book ``email`` onto an existing event, once per (event, email).

        The existence and duplicate pre-checks fail fast; the transaction's own
        conditions decide when concurrent callers race on the same key.
        """
        email = normalize_email(email)
        if not isinstance(event_id, str) or not event_id.strip():
            raise MissingFieldError("eventId")
        event_id = event_id.strip()

        if not self.event_service.event_exists(event_id):
            raise EventNotFoundError(event_id)
        if self._get_booking_item(event_id, email) is not None:
            raise DuplicateBookingError(event_id, email)

        timestamp = iso_timestamp(self.now())
        item = {
            "PK": f"EVENT#{event_id}",
            "SK": f"BOOKING#{email}",
            "id": str(uuid.uuid4()),
            "eventId": event_id,
            "email": email,
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }

        transact_items = [
            {
                "ConditionCheck": {
                    "TableName": self.table.table_name,
                    "Key": {"PK": f"EVENT#{event_id}", "SK": "DETAIL"},
                    "ConditionExpression": "attribute_exists(PK)",  # Event must exist
                }
            },
            {
                "Put": {
                    "TableName": self.table.table_name,
                    "Item": dict(item),
                    "ConditionExpression": "attribute_not_exists(PK)",
                }
            },
        ]

        try:
            with store_errors():
                self.dynamodb.meta.client.transact_write_items(
                    TransactItems=transact_items
                )
        except ClientError as e:
            reasons = cancellation_reasons(e)
            if reasons is None:
                raise
            if not reasons:
                # No per-item reasons reported, so re-read to find the culprit
                if not self.event_service.event_exists(event_id):
                    raise EventNotFoundError(event_id) from e
                if self._get_booking_item(event_id, email) is not None:
                    raise DuplicateBookingError(event_id, email) from e
                raise ConstraintViolationError() from e
            if condition_failed(reasons, EVENT_CHECK_ITEM):
                raise EventNotFoundError(event_id) from e
            if condition_failed(reasons, BOOKING_ITEM):
                raise DuplicateBookingError(event_id, email) from e
            raise ConstraintViolationError("eventId, email") from e

        logger.info("Booked %s onto event %s", email, event_id)
        return self._to_booking_out(item)

    def list_bookings(self, event_id: str) -> List[BookingOut]:
        """Bookings for an event, newest first"""
        if not self.event_service.event_exists(event_id):
            raise EventNotFoundError(event_id)

        items = []
        query_params = {
            "KeyConditionExpression": Key("PK").eq(f"EVENT#{event_id}")
            & Key("SK").begins_with("BOOKING#"),
        }
        with store_errors():
            while True:
                response = self.table.query(**query_params)
                items.extend(response.get("Items", []))
                exclusive_start_key = response.get("LastEvaluatedKey")
                if not exclusive_start_key:
                    break
                query_params["ExclusiveStartKey"] = exclusive_start_key

        items.sort(key=lambda item: item["createdAt"], reverse=True)
        return [self._to_booking_out(item) for item in items]

    def _get_booking_item(self, event_id: str, email: str) -> Optional[Dict[str, Any]]:
        with store_errors():
            response = self.table.get_item(
                Key={"PK": f"EVENT#{event_id}", "SK": f"BOOKING#{email}"}
            )
        return response.get("Item")

    def _to_booking_out(self, item: Dict[str, Any]) -> BookingOut:
        return BookingOut(**{k: item[k] for k in BookingOut.model_fields})
