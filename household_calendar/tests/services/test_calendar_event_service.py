import datetime
from unittest.mock import patch

import pytest
from model_bakery import baker

from household_calendar.constants import EditScope, ParticipationType
from household_calendar.exceptions import (
    CalendarEventNotFoundError,
    CalendarEventValidationError,
    ExpansionLimitExceededError,
    HouseholdMembershipRequiredError,
    InvalidRecurrenceRuleError,
    OccurrenceNotFoundError,
)
from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
)
from household_calendar.services.calendar_event_service import CalendarEventService
from household_calendar.services.dataclasses import (
    CalendarContext,
    CalendarEventInputData,
    EventChanges,
    EventMemberInputData,
    OccurrenceFilter,
)
from households.models import Household


def _dt(day, hour=9, minute=0, second=0, month=1):
    return datetime.datetime(2025, month, day, hour, minute, second, tzinfo=datetime.UTC)


JANUARY = OccurrenceFilter(start=_dt(1, 0), end=_dt(1, 0, month=2))


@pytest.fixture
def service():
    return CalendarEventService()


@pytest.fixture
def create_series(service, calendar_context):
    def _create(**kwargs):
        data = {
            "title": "Standup",
            "start_time": _dt(1),
            "end_time": _dt(1, 9, 30),
            **kwargs,
        }
        return service.create_event(calendar_context, CalendarEventInputData(**data))

    return _create


def _starts(occurrences):
    return [occurrence.start for occurrence in occurrences]


@pytest.mark.django_db
class TestCreateEvent:
    def test_creator_is_added_as_involved_member(self, create_series, user):
        event = create_series()

        member = CalendarEventMember.objects.get(event=event)
        assert member.user_id == user.id
        assert member.participation_type == ParticipationType.INVOLVED
        assert event.created_by_id == user.id
        assert not event.is_recurring

    def test_explicit_members(self, create_series, user, household_member):
        event = create_series(
            members=[
                EventMemberInputData(user_id=user.id, participation_type=ParticipationType.AWARE),
                EventMemberInputData(user_id=household_member.id),
            ]
        )

        members = dict(event.members.values_list("user_id", "participation_type"))
        assert members == {
            user.id: ParticipationType.AWARE,
            household_member.id: ParticipationType.INVOLVED,
        }

    def test_stores_canonical_rule(self, create_series):
        event = create_series(recurrence_rule="RRULE:byday=mo,we,fr;freq=weekly;count=6")

        assert event.recurrence_rule == "FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=6"
        assert event.is_recurring

    def test_invalid_rule(self, create_series):
        with pytest.raises(InvalidRecurrenceRuleError):
            create_series(recurrence_rule="FREQ=SOMETIMES")

        assert not CalendarEvent.objects.exists()

    def test_end_must_be_after_start(self, create_series):
        with pytest.raises(CalendarEventValidationError):
            create_series(end_time=_dt(1, 8))

    def test_reminder_out_of_range(self, create_series):
        with pytest.raises(CalendarEventValidationError):
            create_series(reminder_minutes_before=20000)

    def test_member_must_belong_to_household(self, create_series, outsider):
        with pytest.raises(HouseholdMembershipRequiredError):
            create_series(members=[EventMemberInputData(user_id=outsider.id)])

        assert not CalendarEvent.objects.exists()


@pytest.mark.django_db
class TestGetOccurrences:
    def test_weekly_series(self, service, calendar_context, create_series):
        start = _dt(6)
        create_series(
            start_time=start,
            end_time=start + datetime.timedelta(hours=1),
            recurrence_rule="FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=6",
        )

        occurrences = service.get_occurrences(calendar_context, JANUARY)

        assert _starts(occurrences) == [
            _dt(6),
            _dt(8),
            _dt(10),
            _dt(13),
            _dt(15),
            _dt(17),
        ]

    def test_anchor_outside_byday_is_kept(self, service, calendar_context, create_series):
        create_series(
            start_time=_dt(7), end_time=_dt(7, 10), recurrence_rule="FREQ=WEEKLY;BYDAY=MO"
        )

        occurrences = service.get_occurrences(calendar_context, JANUARY)

        assert _starts(occurrences) == [_dt(7), _dt(13), _dt(20), _dt(27)]

    def test_merges_series_chronologically(self, service, calendar_context, create_series):
        create_series(title="Daily", recurrence_rule="FREQ=DAILY;COUNT=3")
        create_series(title="Lunch", start_time=_dt(2, 12), end_time=_dt(2, 13))

        occurrences = service.get_occurrences(calendar_context, JANUARY)

        assert [(occurrence.title, occurrence.start) for occurrence in occurrences] == [
            ("Daily", _dt(1)),
            ("Daily", _dt(2)),
            ("Lunch", _dt(2, 12)),
            ("Daily", _dt(3)),
        ]

    def test_scoped_to_household(self, service, calendar_context, create_series, outsider):
        create_series()
        other_household_id = outsider.household_membership.household_id
        other_context = CalendarContext(household_id=other_household_id, user_id=outsider.id)
        service.create_event(
            other_context,
            CalendarEventInputData(title="Other", start_time=_dt(1), end_time=_dt(1, 10)),
        )

        occurrences = service.get_occurrences(calendar_context, JANUARY)

        assert [occurrence.title for occurrence in occurrences] == ["Standup"]

    def test_filters_by_member_and_participation(
        self, service, calendar_context, create_series, user, household_member
    ):
        create_series(
            title="Mine",
            members=[EventMemberInputData(user_id=user.id)],
        )
        create_series(
            title="Watching",
            members=[
                EventMemberInputData(user_id=user.id, participation_type=ParticipationType.AWARE),
                EventMemberInputData(user_id=household_member.id),
            ],
        )

        involved = service.get_occurrences(
            calendar_context,
            OccurrenceFilter(
                start=JANUARY.start,
                end=JANUARY.end,
                user_id=user.id,
                participation_types=(ParticipationType.INVOLVED,),
            ),
        )
        all_member_events = service.get_occurrences(
            calendar_context,
            OccurrenceFilter(start=JANUARY.start, end=JANUARY.end, user_id=user.id),
        )

        assert [occurrence.title for occurrence in involved] == ["Mine"]
        assert sorted(occurrence.title for occurrence in all_member_events) == ["Mine", "Watching"]

    def test_occurrence_moved_into_window(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=5")
        service.apply_edit(
            calendar_context,
            event.id,
            _dt(3),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(start_time=_dt(20, 14)),
        )

        occurrences = service.get_occurrences(
            calendar_context, OccurrenceFilter(start=_dt(15, 0), end=_dt(25, 0))
        )

        assert len(occurrences) == 1
        assert occurrences[0].original_start == _dt(3)
        assert occurrences[0].start == _dt(20, 14)
        assert occurrences[0].end == _dt(20, 14, 30)

    def test_expansion_limit(self, calendar_context, create_series):
        create_series(recurrence_rule="FREQ=DAILY")
        limited_service = CalendarEventService(max_occurrences=5)

        with pytest.raises(ExpansionLimitExceededError):
            limited_service.get_occurrences(calendar_context, JANUARY)

    def test_invalid_range(self, service, calendar_context):
        with pytest.raises(CalendarEventValidationError):
            service.get_occurrences(
                calendar_context, OccurrenceFilter(start=_dt(2), end=_dt(1))
            )


@pytest.mark.django_db
class TestEditThisEventOnly:
    def test_overrides_only_the_target(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(2),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(title="Dentist", start_time=_dt(2, 14)),
        )

        assert result.exception is not None
        assert result.continuation is None
        occurrences = service.get_occurrences(calendar_context, JANUARY)
        assert [(occurrence.title, occurrence.start) for occurrence in occurrences] == [
            ("Standup", _dt(1)),
            ("Dentist", _dt(2, 14)),
            ("Standup", _dt(3)),
        ]
        moved = occurrences[1]
        assert moved.is_exception
        assert moved.end == _dt(2, 14, 30)
        assert moved.original_start == _dt(2)

    def test_second_edit_updates_the_same_exception(
        self, service, calendar_context, create_series
    ):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        service.apply_edit(
            calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY, EventChanges(title="A")
        )
        service.apply_edit(
            calendar_context,
            event.id,
            _dt(2),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(location="Office"),
        )

        exception = CalendarEventException.objects.get(event=event)
        assert exception.title == "A"
        assert exception.location == "Office"

    def test_restores_deleted_occurrence(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")
        service.apply_delete(calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY)

        service.apply_edit(
            calendar_context,
            event.id,
            _dt(2),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(title="Back"),
        )

        titles = [occurrence.title for occurrence in service.get_occurrences(calendar_context, JANUARY)]
        assert titles == ["Standup", "Back", "Standup"]

    def test_requires_occurrence_fields(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        with pytest.raises(CalendarEventValidationError):
            service.apply_edit(
                calendar_context,
                event.id,
                _dt(2),
                EditScope.THIS_EVENT_ONLY,
                EventChanges(color="#000000"),
            )

    def test_unknown_occurrence(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        with pytest.raises(OccurrenceNotFoundError):
            service.apply_edit(
                calendar_context,
                event.id,
                _dt(2, 10),
                EditScope.THIS_EVENT_ONLY,
                EventChanges(title="Nope"),
            )

    def test_single_event_is_edited_as_a_whole(self, service, calendar_context, create_series):
        event = create_series()

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(1),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(title="Renamed"),
        )

        assert result.exception is None
        event.refresh_from_db()
        assert event.title == "Renamed"
        assert not CalendarEventException.objects.exists()


@pytest.mark.django_db
class TestEditThisAndFuture:
    def test_splits_series_with_remaining_count(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=10")

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(5),
            EditScope.THIS_AND_FUTURE,
            EventChanges(title="New standup"),
        )

        event.refresh_from_db()
        continuation = result.continuation
        assert event.recurrence_end_date == _dt(5, 8, 59, 59)
        assert continuation.parent_event_id == event.id
        assert continuation.start_time == _dt(5)
        assert continuation.recurrence_rule == "FREQ=DAILY;COUNT=6"

        occurrences = service.get_occurrences(calendar_context, JANUARY)
        assert len(occurrences) == 10
        assert [occurrence.title for occurrence in occurrences] == ["Standup"] * 4 + [
            "New standup"
        ] * 6

    def test_copies_members(self, service, calendar_context, create_series, household_member):
        event = create_series(
            recurrence_rule="FREQ=DAILY",
            members=[EventMemberInputData(user_id=household_member.id)],
        )

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(3),
            EditScope.THIS_AND_FUTURE,
            EventChanges(location="Garden"),
        )

        assert set(result.continuation.members.values_list("user_id", flat=True)) == set(
            event.members.values_list("user_id", flat=True)
        )

    def test_moves_and_rekeys_later_exceptions(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=10")
        service.apply_edit(
            calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY, EventChanges(title="Early")
        )
        service.apply_edit(
            calendar_context, event.id, _dt(7), EditScope.THIS_EVENT_ONLY, EventChanges(title="Late")
        )

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(5),
            EditScope.THIS_AND_FUTURE,
            EventChanges(start_time=_dt(5, 10)),
        )

        early = CalendarEventException.objects.get(title="Early")
        late = CalendarEventException.objects.get(title="Late")
        assert early.event_id == event.id
        assert early.original_start == _dt(2)
        assert late.event_id == result.continuation.id
        assert late.original_start == _dt(7, 10)

        occurrences = service.get_occurrences(calendar_context, JANUARY)
        late_occurrence = next(occurrence for occurrence in occurrences if occurrence.title == "Late")
        assert late_occurrence.start == _dt(7, 10)
        assert late_occurrence.end == _dt(7, 10, 30)

    def test_moving_target_off_the_weekday_pattern(self, service, calendar_context, create_series):
        event = create_series(
            title="Gym",
            start_time=_dt(6),
            end_time=_dt(6, 10),
            recurrence_rule="FREQ=WEEKLY;BYDAY=MO,WE,FR",
        )

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(15),
            EditScope.THIS_AND_FUTURE,
            EventChanges(start_time=_dt(16), title="Gym v2"),
        )

        assert result.continuation.start_time == _dt(16)
        occurrences = service.get_occurrences(
            calendar_context, OccurrenceFilter(start=_dt(1, 0), end=_dt(21, 0))
        )
        assert [(occurrence.start, occurrence.title) for occurrence in occurrences] == [
            (_dt(6), "Gym"),
            (_dt(8), "Gym"),
            (_dt(10), "Gym"),
            (_dt(13), "Gym"),
            (_dt(16), "Gym v2"),
            (_dt(17), "Gym v2"),
            (_dt(20), "Gym v2"),
        ]

    def test_target_exception_yields_to_changed_fields(
        self, service, calendar_context, create_series
    ):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=10")
        service.apply_edit(
            calendar_context,
            event.id,
            _dt(5),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(title="Special", location="Attic", start_time=_dt(5, 10)),
        )

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(5),
            EditScope.THIS_AND_FUTURE,
            EventChanges(title="New"),
        )

        continuation = result.continuation
        assert continuation.start_time == _dt(5, 10)
        exception = CalendarEventException.objects.get()
        assert exception.event_id == continuation.id
        assert exception.original_start == _dt(5, 10)
        assert exception.title is None
        assert exception.location == "Attic"
        assert exception.start_time is None

        occurrences = service.get_occurrences(calendar_context, JANUARY)
        target = next(occurrence for occurrence in occurrences if occurrence.start == _dt(5, 10))
        assert target.title == "New"
        assert target.location == "Attic"
        assert [occurrence.title for occurrence in occurrences[4:]] == ["New"] * 6

    def test_target_exception_without_remaining_overrides_is_removed(
        self, service, calendar_context, create_series
    ):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=10")
        service.apply_edit(
            calendar_context,
            event.id,
            _dt(5),
            EditScope.THIS_EVENT_ONLY,
            EventChanges(title="Special"),
        )

        service.apply_edit(
            calendar_context, event.id, _dt(5), EditScope.THIS_AND_FUTURE, EventChanges(title="New")
        )

        assert not CalendarEventException.objects.exists()
        titles = [
            occurrence.title for occurrence in service.get_occurrences(calendar_context, JANUARY)
        ]
        assert titles == ["Standup"] * 4 + ["New"] * 6

    def test_first_occurrence_edits_whole_series(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(1),
            EditScope.THIS_AND_FUTURE,
            EventChanges(title="Everything"),
        )

        assert result.continuation is None
        assert CalendarEvent.objects.count() == 1
        event.refresh_from_db()
        assert event.title == "Everything"
        assert event.recurrence_end_date is None

    def test_new_rule_for_the_continuation(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY")

        result = service.apply_edit(
            calendar_context,
            event.id,
            _dt(6),
            EditScope.THIS_AND_FUTURE,
            EventChanges(recurrence_rule="FREQ=WEEKLY;BYDAY=MO"),
        )

        assert result.continuation.recurrence_rule == "FREQ=WEEKLY;BYDAY=MO"
        starts = _starts(service.get_occurrences(calendar_context, JANUARY))
        assert starts == [_dt(day) for day in (1, 2, 3, 4, 5, 6, 13, 20, 27)]

    def test_split_is_atomic(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=10")

        with (
            patch.object(
                CalendarEventMember.objects, "bulk_create", side_effect=RuntimeError("boom")
            ),
            pytest.raises(RuntimeError),
        ):
            service.apply_edit(
                calendar_context,
                event.id,
                _dt(5),
                EditScope.THIS_AND_FUTURE,
                EventChanges(title="Never"),
            )

        event.refresh_from_db()
        assert event.recurrence_end_date is None
        assert CalendarEvent.objects.count() == 1
        assert len(service.get_occurrences(calendar_context, JANUARY)) == 10

    def test_cap_cannot_be_extended_past_continuation(
        self, service, calendar_context, create_series
    ):
        event = create_series(recurrence_rule="FREQ=DAILY")
        service.apply_edit(
            calendar_context, event.id, _dt(5), EditScope.THIS_AND_FUTURE, EventChanges(title="B")
        )

        with pytest.raises(CalendarEventValidationError):
            service.update_event(
                calendar_context, event.id, EventChanges(recurrence_end_date=_dt(20))
            )

        updated = service.update_event(calendar_context, event.id, EventChanges(title="A"))
        assert updated.recurrence_end_date == _dt(5, 8, 59, 59)


@pytest.mark.django_db
class TestEditAllEvents:
    def test_moves_series_relative_to_target(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        service.apply_edit(
            calendar_context,
            event.id,
            _dt(3),
            EditScope.ALL_EVENTS,
            EventChanges(start_time=_dt(3, 10), title="Later"),
        )

        event.refresh_from_db()
        assert event.start_time == _dt(1, 10)
        assert event.end_time == _dt(1, 10, 30)
        occurrences = service.get_occurrences(calendar_context, JANUARY)
        assert _starts(occurrences) == [_dt(1, 10), _dt(2, 10), _dt(3, 10)]
        assert {occurrence.title for occurrence in occurrences} == {"Later"}

    def test_keeps_exceptions(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")
        service.apply_edit(
            calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY, EventChanges(title="Kept")
        )

        service.apply_edit(
            calendar_context, event.id, _dt(1), EditScope.ALL_EVENTS, EventChanges(color="red")
        )

        titles = [occurrence.title for occurrence in service.get_occurrences(calendar_context, JANUARY)]
        assert titles == ["Standup", "Kept", "Standup"]

    def test_moving_start_orphans_exceptions(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")
        service.apply_edit(
            calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY, EventChanges(title="Gone")
        )

        service.apply_edit(
            calendar_context,
            event.id,
            _dt(1),
            EditScope.ALL_EVENTS,
            EventChanges(start_time=_dt(1, 11)),
        )

        titles = [occurrence.title for occurrence in service.get_occurrences(calendar_context, JANUARY)]
        assert titles == ["Standup"] * 3
        assert CalendarEventException.objects.filter(event=event).exists()

    def test_clear_rule_and_reminder(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3", reminder_minutes_before=15)

        service.update_event(
            calendar_context,
            event.id,
            EventChanges(recurrence_rule="", reminder_minutes_before=0),
        )

        event.refresh_from_db()
        assert event.recurrence_rule is None
        assert event.reminder_minutes_before is None
        assert len(service.get_occurrences(calendar_context, JANUARY)) == 1

    def test_invalid_scope(self, service, calendar_context, create_series):
        event = create_series()

        with pytest.raises(CalendarEventValidationError):
            service.apply_edit(calendar_context, event.id, _dt(1), "sometimes", EventChanges())


@pytest.mark.django_db
class TestDelete:
    def test_this_event_only(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")

        result = service.apply_delete(calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY)

        assert result.exception.is_deleted
        assert _starts(service.get_occurrences(calendar_context, JANUARY)) == [_dt(1), _dt(3)]

    def test_this_and_future_caps_series(self, service, calendar_context, create_series):
        event = create_series(recurrence_rule="FREQ=DAILY")

        service.apply_delete(calendar_context, event.id, _dt(5), EditScope.THIS_AND_FUTURE)

        event.refresh_from_db()
        assert event.recurrence_end_date == _dt(5, 8, 59, 59)
        assert _starts(service.get_occurrences(calendar_context, JANUARY)) == [
            _dt(day) for day in (1, 2, 3, 4)
        ]

    def test_this_and_future_from_first_occurrence_deletes_series(
        self, service, calendar_context, create_series
    ):
        event = create_series(recurrence_rule="FREQ=DAILY")

        result = service.apply_delete(calendar_context, event.id, _dt(1), EditScope.THIS_AND_FUTURE)

        assert result.deleted
        assert not CalendarEvent.objects.filter(id=event.id).exists()

    def test_all_events_removes_exceptions_and_members(
        self, service, calendar_context, create_series
    ):
        event = create_series(recurrence_rule="FREQ=DAILY;COUNT=3")
        service.apply_delete(calendar_context, event.id, _dt(2), EditScope.THIS_EVENT_ONLY)

        service.apply_delete(calendar_context, event.id, _dt(3), EditScope.ALL_EVENTS)

        assert not CalendarEvent.objects.exists()
        assert not CalendarEventException.objects.exists()
        assert not CalendarEventMember.objects.exists()

    def test_other_household_event_is_not_found(self, service, calendar_context, user):
        event = baker.make(
            CalendarEvent,
            household=baker.make(Household),
            created_by=user,
            start_time=_dt(1),
            end_time=_dt(1, 10),
        )

        with pytest.raises(CalendarEventNotFoundError):
            service.apply_delete(calendar_context, event.id, _dt(1), EditScope.ALL_EVENTS)


@pytest.mark.django_db
class TestMembers:
    def test_add_and_update_member(self, service, calendar_context, create_series, household_member):
        event = create_series()

        service.add_member(calendar_context, event.id, household_member.id)
        member = service.add_member(
            calendar_context, event.id, household_member.id, ParticipationType.AWARE
        )

        assert member.participation_type == ParticipationType.AWARE
        assert event.members.count() == 2

    def test_add_outsider(self, service, calendar_context, create_series, outsider):
        event = create_series()

        with pytest.raises(HouseholdMembershipRequiredError):
            service.add_member(calendar_context, event.id, outsider.id)

    def test_remove_member(self, service, calendar_context, create_series, user):
        event = create_series()

        assert service.remove_member(calendar_context, event.id, user.id)
        assert not service.remove_member(calendar_context, event.id, user.id)
