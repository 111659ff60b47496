import datetime

import pytest
from model_bakery import baker

from household_calendar.constants import ParticipationType
from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    CalendarFeedToken,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)


def _dt(day, hour=9):
    return datetime.datetime(2025, 1, day, hour, tzinfo=datetime.UTC)


@pytest.fixture
def make_event(household, user):
    def _make(**kwargs):
        data = {
            "household": household,
            "created_by": user,
            "start_time": _dt(1),
            "end_time": _dt(1, 10),
            "recurrence_rule": None,
            **kwargs,
        }
        return baker.make(CalendarEvent, **data)

    return _make


@pytest.mark.django_db
class TestCalendarEventQuerySet:
    def test_filter_in_range(self, make_event):
        overlapping = make_event()
        make_event(start_time=_dt(5), end_time=_dt(5, 10))
        series = make_event(recurrence_rule="FREQ=DAILY")
        make_event(start_time=_dt(10), end_time=_dt(10, 10), recurrence_rule="FREQ=DAILY")

        events = CalendarEvent.objects.filter_in_range(_dt(1, 9), _dt(3))

        assert set(events) == {overlapping, series}

    def test_filter_in_range_skips_series_capped_before_the_range(self, make_event):
        capped = make_event(recurrence_rule="FREQ=DAILY", recurrence_end_date=_dt(5, 8))
        long_occurrences = make_event(
            end_time=_dt(5, 9), recurrence_rule="FREQ=DAILY", recurrence_end_date=_dt(5, 8)
        )
        moved = make_event(recurrence_rule="FREQ=DAILY", recurrence_end_date=_dt(5, 8))
        baker.make(
            CalendarEventException,
            event=moved,
            original_start=_dt(2),
            start_time=_dt(10),
            end_time=_dt(10, 10),
        )
        deleted = make_event(recurrence_rule="FREQ=DAILY", recurrence_end_date=_dt(5, 8))
        baker.make(CalendarEventException, event=deleted, original_start=_dt(2), is_deleted=True)

        events = CalendarEvent.objects.filter_in_range(_dt(8), _dt(12))

        assert set(events) == {long_occurrences, moved}
        assert capped in CalendarEvent.objects.filter_in_range(_dt(4), _dt(6))

    def test_recurring_and_non_recurring(self, make_event):
        single = make_event()
        series = make_event(recurrence_rule="FREQ=WEEKLY")

        assert list(CalendarEvent.objects.filter_recurring_objects()) == [series]
        assert list(CalendarEvent.objects.filter_non_recurring_objects()) == [single]

    def test_filter_by_household(self, make_event, household):
        event = make_event()
        make_event(household=baker.make("households.Household"))

        assert list(CalendarEvent.objects.filter_by_household(household.id)) == [event]

    def test_filter_by_member(self, make_event, user, household_member):
        involved = make_event()
        aware = make_event()
        make_event()
        baker.make(CalendarEventMember, event=involved, user=user)
        baker.make(
            CalendarEventMember,
            event=aware,
            user=user,
            participation_type=ParticipationType.AWARE,
        )
        baker.make(CalendarEventMember, event=aware, user=household_member)

        assert set(CalendarEvent.objects.filter_by_member(user.id)) == {involved, aware}
        assert list(
            CalendarEvent.objects.filter_by_member(user.id, [ParticipationType.INVOLVED])
        ) == [involved]


@pytest.mark.django_db
class TestExternalCalendarQuerySets:
    def test_filter_due_for_sync(self, household, user):
        never_synced = baker.make(
            ExternalCalendarSubscription, household=household, user=user, last_synced_at=None
        )
        stale = baker.make(
            ExternalCalendarSubscription,
            household=household,
            user=user,
            sync_interval_minutes=60,
            last_synced_at=_dt(1, 8),
        )
        baker.make(
            ExternalCalendarSubscription,
            household=household,
            user=user,
            sync_interval_minutes=120,
            last_synced_at=_dt(1, 8),
        )
        baker.make(
            ExternalCalendarSubscription,
            household=household,
            user=user,
            is_active=False,
            last_synced_at=None,
        )

        due = ExternalCalendarSubscription.objects.filter_due_for_sync(_dt(1, 9))

        assert set(due) == {never_synced, stale}

    def test_filter_busy_for_user(self, household, user, household_member):
        active = baker.make(
            ExternalCalendarSubscription, household=household, user=user, is_active=True
        )
        inactive = baker.make(
            ExternalCalendarSubscription, household=household, user=user, is_active=False
        )
        others = baker.make(
            ExternalCalendarSubscription, household=household, user=household_member
        )
        busy = baker.make(
            ExternalCalendarEvent, subscription=active, start_time=_dt(2), end_time=_dt(2, 10)
        )
        baker.make(
            ExternalCalendarEvent, subscription=active, start_time=_dt(9), end_time=_dt(9, 10)
        )
        baker.make(
            ExternalCalendarEvent, subscription=inactive, start_time=_dt(2), end_time=_dt(2, 10)
        )
        baker.make(
            ExternalCalendarEvent, subscription=others, start_time=_dt(2), end_time=_dt(2, 10)
        )

        events = ExternalCalendarEvent.objects.filter_busy_for_user(
            household.id, user.id
        ).filter_in_range(_dt(1), _dt(3))

        assert list(events) == [busy]


@pytest.mark.django_db
def test_feed_token_filter_valid(household, user):
    valid = baker.make(CalendarFeedToken, household=household, user=user, token="a")
    baker.make(CalendarFeedToken, household=household, user=user, token="b", is_revoked=True)

    assert list(CalendarFeedToken.objects.filter_valid()) == [valid]
