import datetime

from household_calendar.models import CalendarEvent, CalendarEventException
from household_calendar.overlay import ExceptionOverlay
from household_calendar.recurrence_utils import RawOccurrence


def _dt(day, hour=9, minute=0):
    return datetime.datetime(2025, 1, day, hour, minute, tzinfo=datetime.UTC)


def _event():
    return CalendarEvent(
        id=1,
        title="Standup",
        description="Daily sync",
        location="Kitchen",
        start_time=_dt(1),
        end_time=_dt(1, 9, 30),
        recurrence_rule="FREQ=DAILY",
        color="#2196F3",
        reminder_minutes_before=10,
    )


def _raw(day):
    return RawOccurrence(original_start=_dt(day), start=_dt(day), end=_dt(day, 9, 30))


def test_occurrence_without_exception_uses_series_values():
    event = _event()

    (occurrence,) = ExceptionOverlay([]).apply(event, [_raw(2)])

    assert occurrence.event_id == 1
    assert occurrence.start == _dt(2)
    assert occurrence.end == _dt(2, 9, 30)
    assert occurrence.title == "Standup"
    assert occurrence.location == "Kitchen"
    assert occurrence.reminder_minutes_before == 10
    assert occurrence.is_recurring
    assert not occurrence.is_exception


def test_deleted_exception_drops_occurrence():
    event = _event()
    overlay = ExceptionOverlay(
        [CalendarEventException(event=event, original_start=_dt(3), is_deleted=True)]
    )

    occurrences = overlay.apply(event, [_raw(2), _raw(3), _raw(4)])

    assert [occurrence.original_start for occurrence in occurrences] == [_dt(2), _dt(4)]


def test_override_replaces_only_the_overridden_fields():
    event = _event()
    overlay = ExceptionOverlay(
        [CalendarEventException(event=event, original_start=_dt(3), title="Retro")]
    )

    _, overridden = overlay.apply(event, [_raw(2), _raw(3)])

    assert overridden.title == "Retro"
    assert overridden.description == "Daily sync"
    assert overridden.location == "Kitchen"
    assert overridden.start == _dt(3)
    assert overridden.is_exception


def test_moved_start_keeps_duration_and_resorts():
    event = _event()
    overlay = ExceptionOverlay(
        [CalendarEventException(event=event, original_start=_dt(2), start_time=_dt(4, 11))]
    )

    occurrences = overlay.apply(event, [_raw(2), _raw(3)])

    assert [occurrence.original_start for occurrence in occurrences] == [_dt(3), _dt(2)]
    moved = occurrences[1]
    assert moved.start == _dt(4, 11)
    assert moved.end == _dt(4, 11, 30)


def test_orphaned_exception_is_never_emitted():
    event = _event()
    overlay = ExceptionOverlay(
        [CalendarEventException(event=event, original_start=_dt(2, 8), title="Orphan")]
    )

    occurrences = overlay.apply(event, [_raw(2)])

    assert len(occurrences) == 1
    assert occurrences[0].title == "Standup"
