import base64

import pytest
from devevent.errors import (
    EmptyCollectionError,
    EmptySlugBaseError,
    EventNotFoundError,
    InvalidDateError,
    InvalidModeError,
    InvalidTimeError,
    MissingFieldError,
    SlugAllocationExhaustedError,
    TooManyTagsError,
)
from devevent.schemas.event import EventCreate, EventOut, EventUpdate
from devevent.services.event_service import (
    MAX_SLUG_ATTEMPTS,
    MAX_TAGS,
    EventService,
    prepare_event_fields,
)
from tests.conftest import TEST_TABLE_NAME, count_items


@pytest.fixture
def event_service(dynamodb_resource, clock):
    """Create EventService instance with test table"""
    return EventService(dynamodb_resource, TEST_TABLE_NAME, now=clock)


@pytest.fixture
def create(event_service, event_payload):
    def make(**overrides):
        return event_service.create_event(EventCreate(**event_payload(**overrides)))

    return make


def test_create_event_success(create):
    """Test event creation normalizes fields and derives the slug"""
    result = create(title="  My Event! ", venue="  Moscone Center ")

    assert isinstance(result, EventOut)
    assert result.id
    assert result.slug == "my-event"
    assert result.title == "My Event!"
    assert result.venue == "Moscone Center"
    assert result.date == "2026-06-02"
    assert result.time == "09:00"
    assert result.mode == "hybrid"
    assert result.tags == ["cloud", "devops"]
    assert result.createdAt == result.updatedAt


def test_create_event_persists_record_and_slug_claim(create, event_service):
    result = create()

    detail = event_service.table.get_item(
        Key={"PK": f"EVENT#{result.id}", "SK": "DETAIL"}
    )["Item"]
    claim = event_service.table.get_item(
        Key={"PK": f"SLUG#{result.slug}", "SK": "SLUG"}
    )["Item"]

    assert detail["slug"] == "cloud-native-summit-2026"
    assert detail["date"] == "2026-06-02"
    assert detail["time"] == "09:00"
    assert claim["eventId"] == result.id


def test_same_title_gets_counter_suffix(create):
    first = create(title="My Event!")
    second = create(title="my event")
    third = create(title="MY   EVENT")

    assert first.slug == "my-event"
    assert second.slug == "my-event-1"
    assert third.slug == "my-event-2"


def test_invalid_mode_fails_before_any_write(create, dynamodb_resource):
    with pytest.raises(InvalidModeError):
        create(mode="virtual")

    assert count_items(dynamodb_resource, "EVENT#") == 0
    assert count_items(dynamodb_resource, "SLUG#") == 0


@pytest.mark.parametrize("field", ["agenda", "tags"])
def test_empty_collections_are_rejected(create, dynamodb_resource, field):
    with pytest.raises(EmptyCollectionError) as exc_info:
        create(**{field: []})

    assert exc_info.value.field == field
    assert count_items(dynamodb_resource, "EVENT#") == 0


def test_blank_collection_entries_are_rejected(create):
    with pytest.raises(EmptyCollectionError):
        create(tags=["  ", ""])


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"date": "someday"}, InvalidDateError),
        ({"time": "25:00"}, InvalidTimeError),
        ({"venue": "   "}, MissingFieldError),
        ({"title": "!!!"}, EmptySlugBaseError),
    ],
)
def test_invalid_fields_write_nothing(create, dynamodb_resource, overrides, error):
    with pytest.raises(error):
        create(**overrides)

    assert count_items(dynamodb_resource, "EVENT#") == 0
    assert count_items(dynamodb_resource, "TAG#") == 0


def test_prepare_event_fields_requires_every_field(event_payload):
    payload = event_payload()
    del payload["organizer"]

    with pytest.raises(MissingFieldError) as exc_info:
        prepare_event_fields(payload)
    assert exc_info.value.field == "organizer"


def test_prepare_event_fields_only_touches_changed_fields(event_payload):
    prior = prepare_event_fields(event_payload())

    changes = {"time": "09:00", "date": "2026-06-02T12:00:00Z", "venue": "Pier 48"}
    assert prepare_event_fields(changes, prior) == {"venue": "Pier 48"}


def test_get_event_by_slug(create, event_service):
    created = create()

    fetched = event_service.get_event_by_slug("cloud-native-summit-2026")

    assert fetched == created


def test_get_event_by_unknown_slug_raises(event_service):
    with pytest.raises(EventNotFoundError):
        event_service.get_event_by_slug("no-such-event")


def test_update_title_reslugs_and_releases_old_slug(create, event_service):
    created = create(title="Old Name")

    updated = event_service.update_event(created.id, EventUpdate(title="New Name"))

    assert updated.slug == "new-name"
    assert updated.createdAt == created.createdAt
    assert updated.updatedAt > created.updatedAt
    assert event_service.get_event_by_slug("new-name").id == created.id
    with pytest.raises(EventNotFoundError):
        event_service.get_event_by_slug("old-name")

    # The released slug is free for the next event
    assert create(title="Old Name").slug == "old-name"


def test_update_title_to_same_slug_keeps_it(create, event_service):
    create(title="Launch Party")
    second = create(title="Launch Party")
    assert second.slug == "launch-party-1"

    updated = event_service.update_event(second.id, EventUpdate(title="launch   party"))

    assert updated.title == "launch   party"
    assert updated.slug == "launch-party-1"


def test_update_normalizes_changed_schedule(create, event_service):
    created = create()

    updated = event_service.update_event(
        created.id, EventUpdate(date="July 4, 2026", time="2:30 PM")
    )

    assert updated.date == "2026-07-04"
    assert updated.time == "14:30"
    assert updated.slug == created.slug


def test_update_with_invalid_time_leaves_record_unchanged(create, event_service):
    created = create()

    with pytest.raises(InvalidTimeError):
        event_service.update_event(
            created.id, EventUpdate(title="Renamed", time="13:00 PM")
        )

    assert event_service.get_event_by_slug(created.slug) == created


def test_update_unknown_event_raises(event_service):
    with pytest.raises(EventNotFoundError):
        event_service.update_event("missing-id", EventUpdate(venue="Anywhere"))


def test_slug_claimed_between_check_and_write_is_retried(
    create, event_service, monkeypatch
):
    """A stale collision check loses the claim race and allocation is re-run"""
    create(title="My Event")
    real_slug_taken = event_service._slug_taken
    calls = {"count": 0}

    def stale_then_real(candidate, exclude_id):
        calls["count"] += 1
        if calls["count"] == 1:
            return False
        return real_slug_taken(candidate, exclude_id)

    monkeypatch.setattr(event_service, "_slug_taken", stale_then_real)

    result = create(title="My Event")

    assert result.slug == "my-event-1"


def test_slug_race_gives_up_after_bounded_attempts(create, event_service, monkeypatch, dynamodb_resource):
    create(title="My Event")
    monkeypatch.setattr(event_service, "_slug_taken", lambda candidate, exclude_id: False)

    with pytest.raises(SlugAllocationExhaustedError) as exc_info:
        create(title="My Event")

    assert exc_info.value.attempts == MAX_SLUG_ATTEMPTS
    assert count_items(dynamodb_resource, "EVENT#") == 1


def test_list_events_newest_first_with_pagination(create, event_service):
    titles = ["First", "Second", "Third"]
    for title in titles:
        create(title=title)

    page, next_token = event_service.list_events(limit=2)
    assert [event.title for event in page] == ["Third", "Second"]
    assert next_token is not None

    rest, _ = event_service.list_events(limit=2, last_evaluated_key=next_token)
    assert [event.title for event in rest] == ["First"]


def test_find_similar_returns_newest_sharing_a_tag(create, event_service):
    source = create(title="Source", tags=["ai", "cloud"])
    create(title="Old AI", tags=["ai"])
    create(title="Web Only", tags=["web"])
    create(title="Cloud Ops", tags=["cloud", "devops"])
    create(title="AI on the Web", tags=["web", "ai"])
    create(title="Newest Cloud", tags=["cloud"])
    create(title="Newest Web", tags=["web"])

    similar = event_service.find_similar(source.slug)

    assert [event.title for event in similar] == [
        "Newest Cloud",
        "AI on the Web",
        "Cloud Ops",
    ]
    assert all(set(event.tags) & {"ai", "cloud"} for event in similar)
    assert source.id not in [event.id for event in similar]


def test_find_similar_respects_limit(create, event_service):
    source = create(title="Source", tags=["ai"])
    for n in range(5):
        create(title=f"AI Talk {n}", tags=["ai"])

    similar = event_service.find_similar(source.slug, limit=2)

    assert [event.title for event in similar] == ["AI Talk 4", "AI Talk 3"]


def test_find_similar_unknown_slug_is_empty(event_service):
    assert event_service.find_similar("no-such-event") == []


def test_find_similar_without_shared_tags_is_empty(create, event_service):
    source = create(title="Source", tags=["rust"])
    create(title="Other", tags=["go"])

    assert event_service.find_similar(source.slug) == []


def test_removed_tags_stop_matching(create, event_service):
    source = create(title="Source", tags=["ai"])
    other = create(title="Other", tags=["ai", "data"])
    assert [event.id for event in event_service.find_similar(source.slug)] == [other.id]

    event_service.update_event(other.id, EventUpdate(tags=["data"]))

    assert event_service.find_similar(source.slug) == []


def test_tag_count_at_limit_is_accepted(create, event_service):
    tags = [f"tag-{n}" for n in range(MAX_TAGS)]

    result = create(tags=tags + ["tag-0"])

    assert result.tags == tags + ["tag-0"]


def test_too_many_distinct_tags_fail_before_any_write(create, dynamodb_resource):
    with pytest.raises(TooManyTagsError) as exc_info:
        create(tags=[f"tag-{n}" for n in range(MAX_TAGS + 1)])

    assert exc_info.value.count == MAX_TAGS + 1
    assert count_items(dynamodb_resource, "EVENT#") == 0
    assert count_items(dynamodb_resource, "TAG#") == 0


def test_update_swapping_every_tag_at_limit_fits_one_write(create, event_service):
    created = create(title="Old Name", tags=[f"old-{n}" for n in range(MAX_TAGS)])

    updated = event_service.update_event(
        created.id,
        EventUpdate(title="New Name", tags=[f"new-{n}" for n in range(MAX_TAGS)]),
    )

    assert updated.slug == "new-name"
    assert updated.tags == [f"new-{n}" for n in range(MAX_TAGS)]


@pytest.mark.parametrize("payload", ["1", "[]", '"key"', "null"])
def test_list_events_ignores_token_that_is_not_a_key(create, event_service, payload):
    create(title="Only")
    token = base64.b64encode(payload.encode()).decode()

    events, next_token = event_service.list_events(limit=2, last_evaluated_key=token)

    assert [event.title for event in events] == ["Only"]
    assert next_token is None
