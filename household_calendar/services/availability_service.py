import datetime
import logging
from collections.abc import Iterable

from household_calendar.constants import (
    MAX_SLOT_DURATION,
    MAX_SLOT_RESULTS,
    MAX_SLOT_SEARCH_RANGE,
    MIN_SLOT_DURATION,
    BusySource,
    ParticipationType,
)
from household_calendar.exceptions import AvailabilityQueryError
from household_calendar.models import ExternalCalendarEvent
from household_calendar.services.calendar_event_service import CalendarEventService
from household_calendar.services.dataclasses import (
    AvailableSlot,
    BusyInterval,
    CalendarContext,
    FreeBusyData,
    OccurrenceFilter,
)


logger = logging.getLogger(__name__)

ONE_MINUTE = datetime.timedelta(minutes=1)


def merge_busy_intervals(intervals: Iterable[BusyInterval]) -> list[BusyInterval]:
    """
    Sort intervals and coalesce the ones that overlap or touch into a minimal,
    non-overlapping list. Merged intervals keep the source of the first one.
    """
    merged: list[BusyInterval] = []
    for interval in sorted(intervals, key=lambda item: (item.start, item.end)):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = BusyInterval(start=last.start, end=interval.end, source=last.source)
            continue
        merged.append(interval)
    return merged


def clip_intervals(
    intervals: Iterable[BusyInterval], start: datetime.datetime, end: datetime.datetime
) -> list[BusyInterval]:
    return [
        BusyInterval(start=max(interval.start, start), end=min(interval.end, end), source=interval.source)
        for interval in intervals
        if interval.start < end and interval.end > start
    ]


class AvailabilityService:
    """
    Free/busy timelines of household members and common free slots between them.
    Busy time comes from series where the user is an involved member and from
    the events of the user's active external calendar subscriptions.
    """

    def __init__(self, calendar_event_service: CalendarEventService):
        self.calendar_event_service = calendar_event_service

    def _get_user_busy_intervals(
        self,
        context: CalendarContext,
        user_id: int,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[BusyInterval]:
        occurrences = self.calendar_event_service.get_occurrences(
            context,
            OccurrenceFilter(
                start=start,
                end=end,
                user_id=user_id,
                participation_types=(ParticipationType.INVOLVED,),
            ),
        )
        intervals = [
            BusyInterval(start=occurrence.start, end=occurrence.end, source=BusySource.EVENT)
            for occurrence in occurrences
        ]

        external_events = ExternalCalendarEvent.objects.filter_busy_for_user(
            context.household_id, user_id
        ).filter_in_range(start, end)
        intervals.extend(
            BusyInterval(start=event.start_time, end=event.end_time, source=BusySource.EXTERNAL)
            for event in external_events
        )

        return merge_busy_intervals(clip_intervals(intervals, start, end))

    def get_free_busy(
        self,
        context: CalendarContext,
        user_ids: list[int],
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[FreeBusyData]:
        """
        Get one free/busy record per requested user, in request order.
        :param context: acting user and household.
        :param user_ids: users of the household to compute the timeline for.
        :param start: start of the range.
        :param end: end of the range.
        :return: list of FreeBusyData with sorted, non-overlapping busy intervals.
        """
        if end <= start:
            raise AvailabilityQueryError("End of the range must be after its start.")
        if not user_ids:
            raise AvailabilityQueryError("At least one user is required.")

        unique_user_ids = list(dict.fromkeys(user_ids))
        self.calendar_event_service.ensure_household_members(context, unique_user_ids)

        return [
            FreeBusyData(
                user_id=user_id,
                busy=self._get_user_busy_intervals(context, user_id, start, end),
            )
            for user_id in unique_user_ids
        ]

    def find_slots(
        self,
        context: CalendarContext,
        user_ids: list[int],
        duration: datetime.timedelta,
        start: datetime.datetime,
        end: datetime.datetime,
        max_results: int | None = None,
    ) -> list[AvailableSlot]:
        """
        Find every maximal window within `[start, end)` where all users are free
        for at least `duration`, in chronological order.
        :param max_results: optional cap on the number of returned slots.
        :return: list of AvailableSlot, empty when nothing fits.
        """
        if not MIN_SLOT_DURATION <= duration <= MAX_SLOT_DURATION:
            raise AvailabilityQueryError(
                f"Duration must be between {MIN_SLOT_DURATION // ONE_MINUTE} and "
                f"{MAX_SLOT_DURATION // ONE_MINUTE} minutes."
            )
        if end <= start:
            raise AvailabilityQueryError("End of the search window must be after its start.")
        if end - start > MAX_SLOT_SEARCH_RANGE:
            raise AvailabilityQueryError(
                f"Search window must be at most {MAX_SLOT_SEARCH_RANGE.days} days."
            )
        if max_results is not None and not 1 <= max_results <= MAX_SLOT_RESULTS:
            raise AvailabilityQueryError(f"max_results must be between 1 and {MAX_SLOT_RESULTS}.")

        free_busy = self.get_free_busy(context, user_ids, start, end)
        busy = merge_busy_intervals(
            interval for record in free_busy for interval in record.busy
        )

        slots: list[AvailableSlot] = []
        cursor = start
        for interval in busy:
            if interval.start - cursor >= duration:
                slots.append(AvailableSlot(start=cursor, end=interval.start))
            cursor = max(cursor, interval.end)
        if end - cursor >= duration:
            slots.append(AvailableSlot(start=cursor, end=end))

        logger.debug(
            "Found %s free slots of %s for users %s", len(slots), duration, user_ids
        )
        if max_results is not None:
            return slots[:max_results]
        return slots
