import datetime

import pytest
from icalendar import Calendar
from model_bakery import baker

from household_calendar.constants import EditScope, ParticipationType
from household_calendar.exceptions import FeedTokenInvalidError, FeedTokenNotFoundError
from household_calendar.models import (
    CalendarFeedToken,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)
from household_calendar.services.calendar_event_service import CalendarEventService
from household_calendar.services.calendar_feed_service import CalendarFeedService
from household_calendar.services.dataclasses import (
    CalendarContext,
    CalendarEventInputData,
    EventChanges,
    EventMemberInputData,
)


NOW = datetime.datetime(2025, 1, 10, 12, tzinfo=datetime.UTC)


def _dt(day, hour=9, minute=0, month=1):
    return datetime.datetime(2025, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def event_service():
    return CalendarEventService()


@pytest.fixture
def service(event_service):
    return CalendarFeedService(calendar_event_service=event_service)


@pytest.fixture
def feed_token(service, calendar_context):
    return service.create_token(calendar_context, label="Phone")


def _events(feed):
    return Calendar.from_ical(feed.content).walk("VEVENT")


@pytest.mark.django_db
class TestFeedTokens:
    def test_create_token(self, feed_token, user, household):
        assert feed_token.user_id == user.id
        assert feed_token.household_id == household.id
        assert feed_token.label == "Phone"
        assert len(feed_token.token) >= 43
        assert not feed_token.is_revoked

    def test_tokens_are_unique(self, service, calendar_context):
        first = service.create_token(calendar_context)
        second = service.create_token(calendar_context)

        assert first.token != second.token

    def test_list_tokens_only_returns_own_tokens(
        self, service, calendar_context, feed_token, household, household_member
    ):
        member_context = CalendarContext(household_id=household.id, user_id=household_member.id)
        service.create_token(member_context)

        assert list(service.list_tokens(calendar_context)) == [feed_token]

    def test_revoke_token(self, service, calendar_context, feed_token):
        service.revoke_token(calendar_context, feed_token.id)

        feed_token.refresh_from_db()
        assert feed_token.is_revoked
        with pytest.raises(FeedTokenInvalidError):
            service.get_valid_token(feed_token.token)

    def test_delete_token(self, service, calendar_context, feed_token):
        service.delete_token(calendar_context, feed_token.id)

        assert not CalendarFeedToken.objects.exists()

    def test_other_users_token_is_not_found(
        self, service, feed_token, household, household_member
    ):
        member_context = CalendarContext(household_id=household.id, user_id=household_member.id)

        with pytest.raises(FeedTokenNotFoundError):
            service.revoke_token(member_context, feed_token.id)


@pytest.mark.django_db
class TestGenerateIcsFeed:
    def test_unknown_and_revoked_tokens(self, service, calendar_context, feed_token):
        assert service.generate_ics_feed("missing", now=NOW) is None
        assert service.generate_ics_feed("", now=NOW) is None

        service.revoke_token(calendar_context, feed_token.id)

        assert service.generate_ics_feed(feed_token.token, now=NOW) is None

    def test_calendar_properties(self, service, feed_token):
        feed = service.generate_ics_feed(feed_token.token, now=NOW)

        calendar = Calendar.from_ical(feed.content)
        assert str(calendar["X-WR-CALNAME"]) == "Alex Doe Home Calendar"
        assert str(calendar["VERSION"]) == "2.0"
        assert str(calendar["PRODID"]) == "-//Household API//Home Calendar//EN"
        assert str(calendar["METHOD"]) == "PUBLISH"
        assert _events(feed) == []

    def test_occurrences_with_stable_uids_and_alarms(
        self, service, event_service, calendar_context, feed_token
    ):
        event = event_service.create_event(
            calendar_context,
            CalendarEventInputData(
                title="Piano lesson",
                location="Living room",
                start_time=_dt(6),
                end_time=_dt(6, 10),
                recurrence_rule="FREQ=WEEKLY;COUNT=3",
                reminder_minutes_before=10,
            ),
        )

        feed = service.generate_ics_feed(feed_token.token, now=NOW)

        events = _events(feed)
        assert [str(component["UID"]) for component in events] == [
            f"{event.id}-20250106T090000Z@household-calendar",
            f"{event.id}-20250113T090000Z@household-calendar",
            f"{event.id}-20250120T090000Z@household-calendar",
        ]
        assert str(events[0]["SUMMARY"]) == "Piano lesson"
        assert str(events[0]["LOCATION"]) == "Living room"
        assert events[0]["DTSTART"].dt == _dt(6)
        assert events[0]["DTEND"].dt == _dt(6, 10)
        (alarm,) = events[0].walk("VALARM")
        assert str(alarm["ACTION"]) == "DISPLAY"
        assert alarm["TRIGGER"].dt == datetime.timedelta(minutes=-10)
        assert b"TRIGGER:-PT10M" in feed.content

    def test_deleted_and_moved_occurrences(
        self, service, event_service, calendar_context, feed_token
    ):
        event = event_service.create_event(
            calendar_context,
            CalendarEventInputData(
                title="Standup",
                start_time=_dt(6),
                end_time=_dt(6, 9, 30),
                recurrence_rule="FREQ=DAILY;COUNT=3",
            ),
        )
        event_service.apply_delete(calendar_context, event.id, _dt(7), EditScope.THIS_EVENT_ONLY)
        event_service.apply_edit(
            calendar_context,
            event.id,
            _dt(8),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(start_time=_dt(8, 15)),
        )

        events = _events(service.generate_ics_feed(feed_token.token, now=NOW))

        assert [str(component["UID"]) for component in events] == [
            f"{event.id}-20250106T090000Z@household-calendar",
            f"{event.id}-20250108T090000Z@household-calendar",
        ]
        assert events[1]["DTSTART"].dt == _dt(8, 15)

    def test_all_day_events_use_dates(self, service, event_service, calendar_context, feed_token):
        event_service.create_event(
            calendar_context,
            CalendarEventInputData(
                title="Holiday",
                start_time=_dt(8, 0),
                end_time=_dt(9, 0),
                is_all_day=True,
            ),
        )

        feed = service.generate_ics_feed(feed_token.token, now=NOW)

        (component,) = _events(feed)
        assert component["DTSTART"].dt == datetime.date(2025, 1, 8)
        assert component["DTEND"].dt == datetime.date(2025, 1, 9)
        assert b"DTSTART;VALUE=DATE:20250108" in feed.content

    def test_only_member_events_within_horizon(
        self,
        service,
        event_service,
        calendar_context,
        feed_token,
        user,
        household,
        household_member,
    ):
        event_service.create_event(
            calendar_context,
            CalendarEventInputData(
                title="Aware",
                start_time=_dt(11),
                end_time=_dt(11, 10),
                members=[
                    EventMemberInputData(
                        user_id=user.id, participation_type=ParticipationType.AWARE
                    )
                ],
            ),
        )
        event_service.create_event(
            CalendarContext(household_id=household.id, user_id=household_member.id),
            CalendarEventInputData(title="Not mine", start_time=_dt(11), end_time=_dt(11, 10)),
        )
        event_service.create_event(
            calendar_context,
            CalendarEventInputData(
                title="Too far", start_time=_dt(1, month=6), end_time=_dt(1, 10, month=6)
            ),
        )
        event_service.create_event(
            calendar_context,
            CalendarEventInputData(
                title="Too old",
                start_time=datetime.datetime(2024, 11, 1, 9, tzinfo=datetime.UTC),
                end_time=datetime.datetime(2024, 11, 1, 10, tzinfo=datetime.UTC),
            ),
        )

        events = _events(service.generate_ics_feed(feed_token.token, now=NOW))

        assert [str(component["SUMMARY"]) for component in events] == ["Aware"]

    def test_external_events(self, service, feed_token, household, user):
        subscription = baker.make(
            ExternalCalendarSubscription, household=household, user=user, is_active=True
        )
        baker.make(
            ExternalCalendarEvent,
            subscription=subscription,
            external_uid="abc@example.com",
            title="School trip",
            start_time=_dt(12),
            end_time=_dt(12, 15),
        )

        (component,) = _events(service.generate_ics_feed(feed_token.token, now=NOW))

        assert str(component["UID"]) == f"ext-{subscription.id}-abc@example.com"
        assert str(component["SUMMARY"]) == "School trip"
        assert not component.walk("VALARM")

    def test_records_access_and_last_modified(
        self, service, event_service, calendar_context, feed_token
    ):
        event = event_service.create_event(
            calendar_context,
            CalendarEventInputData(title="Dinner", start_time=_dt(11, 19), end_time=_dt(11, 20)),
        )

        feed = service.generate_ics_feed(feed_token.token, now=NOW)

        feed_token.refresh_from_db()
        assert feed_token.last_accessed_at == NOW
        event.refresh_from_db()
        assert feed.last_modified == event.modified.astimezone(datetime.UTC).replace(microsecond=0)

    def test_last_modified_defaults_to_now(self, service, feed_token):
        feed = service.generate_ics_feed(feed_token.token, now=NOW)

        assert feed.last_modified == NOW

    def test_last_modified_moves_forward_when_an_event_is_removed(
        self, service, event_service, calendar_context, feed_token
    ):
        event_service.create_event(
            calendar_context,
            CalendarEventInputData(title="Dinner", start_time=_dt(11, 19), end_time=_dt(11, 20)),
        )
        removed = event_service.create_event(
            calendar_context,
            CalendarEventInputData(title="Cinema", start_time=_dt(12, 19), end_time=_dt(12, 21)),
        )
        first = service.generate_ics_feed(feed_token.token, now=NOW)
        later = NOW + datetime.timedelta(hours=1)
        unchanged = service.generate_ics_feed(feed_token.token, now=later)

        event_service.delete_event(calendar_context, removed.id)
        changed = service.generate_ics_feed(feed_token.token, now=later)

        assert unchanged.etag == first.etag
        assert unchanged.last_modified == first.last_modified
        assert changed.etag != first.etag
        assert changed.last_modified > first.last_modified
        feed_token.refresh_from_db()
        assert feed_token.content_digest == changed.etag
        assert feed_token.content_last_modified == changed.last_modified
