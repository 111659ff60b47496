import datetime
from collections.abc import Iterable

from household_calendar.models import CalendarEvent, CalendarEventException
from household_calendar.recurrence_utils import RawOccurrence
from household_calendar.services.dataclasses import Occurrence


class ExceptionOverlay:
    """
    Applies the per-occurrence exceptions of one series on top of its raw
    occurrences.

    Exceptions are matched by exact original start. A deleted exception drops
    the occurrence, an override replaces only the fields it sets and an
    occurrence without exception keeps the series values. Exceptions whose key
    matches no raw occurrence are never emitted.
    """

    def __init__(self, exceptions: Iterable[CalendarEventException]):
        self._exceptions_by_start: dict[datetime.datetime, CalendarEventException] = {
            exception.original_start: exception for exception in exceptions
        }

    def get(self, original_start: datetime.datetime) -> CalendarEventException | None:
        return self._exceptions_by_start.get(original_start)

    def apply(
        self, event: CalendarEvent, raw_occurrences: Iterable[RawOccurrence]
    ) -> list[Occurrence]:
        occurrences = [
            occurrence
            for occurrence in (self.apply_one(event, raw) for raw in raw_occurrences)
            if occurrence is not None
        ]
        occurrences.sort(key=lambda occurrence: (occurrence.start, occurrence.original_start))
        return occurrences

    def apply_one(self, event: CalendarEvent, raw: RawOccurrence) -> Occurrence | None:
        exception = self.get(raw.original_start)
        if exception is None:
            return self._build_occurrence(event, raw)
        if exception.is_deleted:
            return None

        start = exception.start_time if exception.start_time is not None else raw.start
        if exception.end_time is not None:
            end = exception.end_time
        else:
            end = start + (raw.end - raw.start)

        return Occurrence(
            event_id=event.id,
            original_start=raw.original_start,
            start=start,
            end=end,
            title=exception.title if exception.title is not None else event.title,
            description=(
                exception.description if exception.description is not None else event.description
            ),
            location=exception.location if exception.location is not None else event.location,
            is_all_day=(
                exception.is_all_day if exception.is_all_day is not None else event.is_all_day
            ),
            color=event.color,
            reminder_minutes_before=event.reminder_minutes_before,
            is_recurring=event.is_recurring,
            is_exception=True,
        )

    @staticmethod
    def _build_occurrence(event: CalendarEvent, raw: RawOccurrence) -> Occurrence:
        return Occurrence(
            event_id=event.id,
            original_start=raw.original_start,
            start=raw.start,
            end=raw.end,
            title=event.title,
            description=event.description,
            location=event.location,
            is_all_day=event.is_all_day,
            color=event.color,
            reminder_minutes_before=event.reminder_minutes_before,
            is_recurring=event.is_recurring,
        )
