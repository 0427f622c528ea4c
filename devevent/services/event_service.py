import base64
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

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
    EmptyCollectionError,
    EmptySlugBaseError,
    EventNotFoundError,
    InvalidModeError,
    MissingFieldError,
    SlugAllocationExhaustedError,
    TooManyTagsError,
)
from devevent.schemas.event import EventCreate, EventOut, EventUpdate
from devevent.services.normalize import (
    normalize_date,
    normalize_slug_text,
    normalize_text,
    normalize_time,
)
from devevent.services.slugs import allocate_slug

logger = logging.getLogger(__name__)

EVENT_MODES = ("online", "offline", "hybrid")
TEXT_FIELDS = (
    "title",
    "description",
    "overview",
    "image",
    "venue",
    "location",
    "audience",
    "organizer",
)
LIST_FIELDS = ("agenda", "tags")
EVENT_FIELDS = TEXT_FIELDS + ("date", "time", "mode") + LIST_FIELDS

# Concurrent creators can claim the same slug between allocation and write
MAX_SLUG_ATTEMPTS = 5

# Every distinct tag is one transact item; an update that swaps all tags plus
# the detail put and both slug claim items must fit DynamoDB's 100-item limit
MAX_TAGS = 48

TIMELINE_INDEX = "GSI_EventsByCreated"
TIMELINE_PK = "EVENT_TIMELINE"

# Position of items in event transactions
DETAIL_ITEM = 0
SLUG_CLAIM_ITEM = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    # Fixed-width so sort keys built from it order chronologically
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _normalize_list(field: str, value) -> List[str]:
    if not isinstance(value, (list, tuple)):
        raise EmptyCollectionError(field)
    entries = [entry.strip() for entry in value if isinstance(entry, str)]
    entries = [entry for entry in entries if entry]
    if not entries:
        raise EmptyCollectionError(field)
    if field == "tags" and len(set(entries)) > MAX_TAGS:
        raise TooManyTagsError(len(set(entries)), MAX_TAGS)
    return entries


def _normalize_field(field: str, value) -> Any:
    if field in TEXT_FIELDS:
        return normalize_text(field, value)
    if field in LIST_FIELDS:
        return _normalize_list(field, value)
    if field == "date":
        return normalize_date(value)
    if field == "time":
        return normalize_time(value)
    if field == "mode":
        if value not in EVENT_MODES:
            raise InvalidModeError(value)
        return value
    raise KeyError(field)


def prepare_event_fields(
    changes: Dict[str, Any], prior: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Validate and normalize the event fields about to be written.

    With no ``prior`` record every field is required. With one, only fields in
    ``changes`` that differ from the prior value are normalized, and fields that
    normalize back to the prior value are dropped. The returned dict holds only
    the values that actually change.
    """
    prepared = {}

    if prior is None:
        for field in EVENT_FIELDS:
            if changes.get(field) is None:
                raise MissingFieldError(field)

    for field in EVENT_FIELDS:
        if field not in changes or changes[field] is None:
            continue
        value = changes[field]
        if prior is not None and prior.get(field) == value:
            continue
        normalized = _normalize_field(field, value)
        if prior is not None and prior.get(field) == normalized:
            continue
        prepared[field] = normalized

    return prepared


def _timeline_sort_key(created_at: str, event_id: str) -> str:
    return f"CREATED#{created_at}#EVENT#{event_id}"


class EventService:
    def __init__(
        self,
        dynamodb_resource,
        table_name=DEFAULT_TABLE_NAME,
        now: Callable[[], datetime] = utc_now,
    ):
        self.dynamodb = dynamodb_resource
        self.table = dynamodb_resource.Table(table_name)
        self.now = now

    def create_event(self, event_data: EventCreate) -> EventOut:
        """Validate, normalize, allocate a slug and insert the event in one transaction"""
        fields = prepare_event_fields(event_data.model_dump())
        slug_base = normalize_slug_text(fields["title"])
        if not slug_base:
            raise EmptySlugBaseError(fields["title"])

        event_id = str(uuid.uuid4())
        timestamp = self._timestamp()
        item = {
            "PK": f"EVENT#{event_id}",
            "SK": "DETAIL",
            "id": event_id,
            **fields,
            "createdAt": timestamp,
            "updatedAt": timestamp,
            "GSI_EventsByCreated_PK": TIMELINE_PK,
            "GSI_EventsByCreated_SK": _timeline_sort_key(timestamp, event_id),
        }

        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            with store_errors():
                item["slug"] = allocate_slug(slug_base, self._slug_taken)

            transact_items = [
                {
                    "Put": {
                        "TableName": self.table.table_name,
                        "Item": dict(item),
                        "ConditionExpression": "attribute_not_exists(PK)",
                    }
                },
                self._slug_claim_put(item["slug"], event_id),
            ]
            for tag in dict.fromkeys(item["tags"]):
                transact_items.append(self._tag_put(tag, item))

            if self._write(transact_items, item["slug"]):
                logger.info("Created event %s with slug %r", event_id, item["slug"])
                return self._to_event_out(item)

            logger.warning(
                "Slug %r claimed concurrently (attempt %d/%d)",
                item["slug"],
                attempt,
                MAX_SLUG_ATTEMPTS,
            )

        raise SlugAllocationExhaustedError(slug_base, MAX_SLUG_ATTEMPTS)

    def update_event(self, event_id: str, event_data: EventUpdate) -> EventOut:
        """Apply a partial update, re-slugging when the title changes"""
        prior = self._get_event_item(event_id)
        if prior is None:
            raise EventNotFoundError(event_id)

        fields = prepare_event_fields(event_data.model_dump(exclude_none=True), prior)
        slug_base = None
        if "title" in fields:
            slug_base = normalize_slug_text(fields["title"])
            if not slug_base:
                raise EmptySlugBaseError(fields["title"])

        item = {**prior, **fields, "updatedAt": self._timestamp()}
        removed_tags = [tag for tag in dict.fromkeys(prior["tags"]) if tag not in item["tags"]]
        added_tags = [tag for tag in dict.fromkeys(item["tags"]) if tag not in prior["tags"]]

        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            if slug_base is not None:
                with store_errors():
                    item["slug"] = allocate_slug(
                        slug_base, self._slug_taken, exclude_id=event_id
                    )

            transact_items = [
                {
                    "Put": {
                        "TableName": self.table.table_name,
                        "Item": dict(item),
                        "ConditionExpression": "attribute_exists(PK)",
                    }
                }
            ]
            if item["slug"] != prior["slug"]:
                transact_items.append(self._slug_claim_put(item["slug"], event_id))
                transact_items.append(
                    {
                        "Delete": {
                            "TableName": self.table.table_name,
                            "Key": {"PK": f"SLUG#{prior['slug']}", "SK": "SLUG"},
                            "ConditionExpression": "eventId = :event_id",
                            "ExpressionAttributeValues": {":event_id": event_id},
                        }
                    }
                )
            for tag in removed_tags:
                transact_items.append(
                    {
                        "Delete": {
                            "TableName": self.table.table_name,
                            "Key": {
                                "PK": f"TAG#{tag}",
                                "SK": _timeline_sort_key(prior["createdAt"], event_id),
                            },
                        }
                    }
                )
            for tag in added_tags:
                transact_items.append(self._tag_put(tag, item))

            if self._write(transact_items, item["slug"], event_id=event_id):
                logger.info("Updated event %s (%s)", event_id, ", ".join(sorted(fields)) or "no changes")
                return self._to_event_out(item)

            logger.warning(
                "Slug %r claimed concurrently (attempt %d/%d)",
                item["slug"],
                attempt,
                MAX_SLUG_ATTEMPTS,
            )

        raise SlugAllocationExhaustedError(slug_base, MAX_SLUG_ATTEMPTS)

    def get_event_by_slug(self, slug: str) -> EventOut:
        item = self._get_item_by_slug(slug)
        if item is None:
            raise EventNotFoundError(slug)
        return self._to_event_out(item)

    def event_exists(self, event_id: str) -> bool:
        return self._get_event_item(event_id) is not None

    def list_events(
        self, limit: int = 50, last_evaluated_key: Optional[str] = None
    ) -> Tuple[List[EventOut], Optional[str]]:
        """
        List events newest first
        Returns: (events, next_last_evaluated_key)
        """
        query_params = {
            "IndexName": TIMELINE_INDEX,
            "KeyConditionExpression": Key("GSI_EventsByCreated_PK").eq(TIMELINE_PK),
            "ScanIndexForward": False,
            "Limit": limit,
        }

        if last_evaluated_key:
            try:
                exclusive_start_key = json.loads(
                    base64.b64decode(last_evaluated_key).decode()
                )
            except (ValueError, json.JSONDecodeError):
                exclusive_start_key = None
            if isinstance(exclusive_start_key, dict):
                query_params["ExclusiveStartKey"] = exclusive_start_key
            else:
                logger.info("Ignoring malformed pagination token")

        with store_errors():
            response = self.table.query(**query_params)

        events = [self._to_event_out(item) for item in response.get("Items", [])]

        next_token = None
        exclusive_start_key = response.get("LastEvaluatedKey")
        if exclusive_start_key:
            next_token = base64.b64encode(
                json.dumps(exclusive_start_key).encode()
            ).decode()

        return events, next_token

    def find_similar(self, slug: str, limit: int = 3) -> List[EventOut]:
        """
        Events sharing at least one tag with the event at ``slug``, newest first.

        An unknown slug yields no recommendations rather than an error.
        """
        source = self._get_item_by_slug(slug)
        if source is None:
            return []

        # Each tag partition is read newest first; limit + 1 covers the source itself
        candidates: Dict[str, str] = {}
        with store_errors():
            for tag in dict.fromkeys(source["tags"]):
                response = self.table.query(
                    KeyConditionExpression=Key("PK").eq(f"TAG#{tag}"),
                    ScanIndexForward=False,
                    Limit=limit + 1,
                )
                for member in response.get("Items", []):
                    if member["eventId"] != source["id"]:
                        candidates[member["eventId"]] = member["SK"]

        ranked = sorted(candidates, key=candidates.get, reverse=True)[:limit]

        similar = []
        for event_id in ranked:
            item = self._get_event_item(event_id)
            if item is not None:
                similar.append(self._to_event_out(item))
        return similar

    def _write(self, transact_items, slug: str, event_id: Optional[str] = None) -> bool:
        """
        Run an event transaction. Returns False when the slug claim lost a race
        and allocation should be retried.
        """
        try:
            with store_errors():
                self.dynamodb.meta.client.transact_write_items(
                    TransactItems=transact_items
                )
            return True
        except ClientError as e:
            reasons = cancellation_reasons(e)
            if reasons is None:
                raise
            if not reasons:
                # No per-item reasons reported, so read the claim directly
                if self._slug_taken(slug, event_id):
                    return False
                raise ConstraintViolationError() from e

            if event_id is not None and condition_failed(reasons, DETAIL_ITEM):
                raise EventNotFoundError(event_id) from e
            if condition_failed(reasons, DETAIL_ITEM):
                raise ConstraintViolationError("id") from e
            if condition_failed(reasons, SLUG_CLAIM_ITEM):
                return False
            raise ConstraintViolationError("slug") from e

    def _slug_taken(self, candidate: str, exclude_id: Optional[str]) -> bool:
        response = self.table.get_item(Key={"PK": f"SLUG#{candidate}", "SK": "SLUG"})
        claim = response.get("Item")
        return claim is not None and claim["eventId"] != exclude_id

    def _slug_claim_put(self, slug: str, event_id: str) -> Dict[str, Any]:
        return {
            "Put": {
                "TableName": self.table.table_name,
                "Item": {
                    "PK": f"SLUG#{slug}",
                    "SK": "SLUG",
                    "slug": slug,
                    "eventId": event_id,
                },
                "ConditionExpression": "attribute_not_exists(PK)",
            }
        }

    def _tag_put(self, tag: str, item: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "Put": {
                "TableName": self.table.table_name,
                "Item": {
                    "PK": f"TAG#{tag}",
                    "SK": _timeline_sort_key(item["createdAt"], item["id"]),
                    "tag": tag,
                    "eventId": item["id"],
                    "createdAt": item["createdAt"],
                },
            }
        }

    def _get_event_item(self, event_id: str) -> Optional[Dict[str, Any]]:
        with store_errors():
            response = self.table.get_item(Key={"PK": f"EVENT#{event_id}", "SK": "DETAIL"})
        return response.get("Item")

    def _get_item_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        with store_errors():
            response = self.table.get_item(Key={"PK": f"SLUG#{slug}", "SK": "SLUG"})
        claim = response.get("Item")
        if claim is None:
            return None
        return self._get_event_item(claim["eventId"])

    def _timestamp(self) -> str:
        return iso_timestamp(self.now())

    def _to_event_out(self, item: Dict[str, Any]) -> EventOut:
        return EventOut(**{k: item[k] for k in EventOut.model_fields})
