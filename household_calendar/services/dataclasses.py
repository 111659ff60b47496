import datetime
from dataclasses import dataclass
from dataclasses import field as dataclass_field

from household_calendar.constants import BusySource, ParticipationType
from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
)


@dataclass(frozen=True)
class CalendarContext:
    """The acting user and the household every call is scoped to."""

    household_id: int
    user_id: int


@dataclass
class EventMemberInputData:
    user_id: int
    participation_type: str = ParticipationType.INVOLVED


@dataclass
class CalendarEventInputData:
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    description: str = ""
    location: str = ""
    is_all_day: bool = False
    recurrence_rule: str | None = None  # RRULE string
    recurrence_end_date: datetime.datetime | None = None
    reminder_minutes_before: int | None = None
    color: str = ""
    members: list[EventMemberInputData] = dataclass_field(default_factory=list)


@dataclass
class EventChanges:
    """
    Field changes for an edit. `None` leaves a field untouched. An empty
    `recurrence_rule` turns the series into a single event and a
    `reminder_minutes_before` of 0 removes the reminder.
    """

    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    is_all_day: bool | None = None
    recurrence_rule: str | None = None
    recurrence_end_date: datetime.datetime | None = None
    reminder_minutes_before: int | None = None
    color: str | None = None

    def has_occurrence_overrides(self) -> bool:
        return any(
            value is not None
            for value in (
                self.title,
                self.description,
                self.location,
                self.start_time,
                self.end_time,
                self.is_all_day,
            )
        )


@dataclass
class EditResult:
    event: CalendarEvent | None
    exception: CalendarEventException | None = None
    continuation: CalendarEvent | None = None
    deleted: bool = False


@dataclass
class OccurrenceFilter:
    start: datetime.datetime
    end: datetime.datetime
    user_id: int | None = None
    participation_types: tuple[str, ...] = (
        ParticipationType.INVOLVED,
        ParticipationType.AWARE,
    )
    event_ids: list[int] | None = None


@dataclass(frozen=True)
class Occurrence:
    event_id: int
    original_start: datetime.datetime
    start: datetime.datetime
    end: datetime.datetime
    title: str
    description: str
    location: str
    is_all_day: bool
    color: str
    reminder_minutes_before: int | None
    is_recurring: bool
    is_exception: bool = False


@dataclass(frozen=True)
class BusyInterval:
    start: datetime.datetime
    end: datetime.datetime
    source: str = BusySource.EVENT


@dataclass
class FreeBusyData:
    user_id: int
    busy: list[BusyInterval] = dataclass_field(default_factory=list)


@dataclass(frozen=True)
class AvailableSlot:
    start: datetime.datetime
    end: datetime.datetime

    @property
    def duration(self) -> datetime.timedelta:
        return self.end - self.start


@dataclass
class ExternalEventInputData:
    external_uid: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    title: str = ""
    description: str = ""
    location: str = ""
    is_all_day: bool = False


@dataclass
class ExternalCalendarSubscriptionInputData:
    name: str
    ics_url: str
    color: str = ""
    sync_interval_minutes: int | None = None
    is_active: bool = True


@dataclass
class IcsFeed:
    content: bytes
    last_modified: datetime.datetime
    etag: str = ""
