import datetime
import logging
from collections.abc import Callable, Iterable

from django.db import transaction

from household_calendar.constants import (
    MAX_COLOR_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_LOCATION_LENGTH,
    MAX_REMINDER_MINUTES,
    MAX_TITLE_LENGTH,
    MIN_REMINDER_MINUTES,
    SPLIT_CAP_OFFSET,
    EditScope,
    ParticipationType,
)
from household_calendar.exceptions import (
    CalendarEventNotFoundError,
    CalendarEventValidationError,
    HouseholdMembershipRequiredError,
    OccurrenceNotFoundError,
)
from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
)
from household_calendar.overlay import ExceptionOverlay
from household_calendar.recurrence_utils import (
    MAX_OCCURRENCES,
    OccurrenceValidator,
    RawOccurrence,
    RecurrenceExpander,
    RecurrenceRule,
    RecurrenceRuleSplitter,
    parse_recurrence_rule,
)
from household_calendar.services.dataclasses import (
    CalendarContext,
    CalendarEventInputData,
    EditResult,
    EventChanges,
    EventMemberInputData,
    Occurrence,
    OccurrenceFilter,
)
from households.models import HouseholdMembership


logger = logging.getLogger(__name__)

EditHandler = Callable[[CalendarEvent, datetime.datetime, EventChanges], EditResult]
DeleteHandler = Callable[[CalendarEvent, datetime.datetime], EditResult]


class CalendarEventService:
    """
    Creates series, lists their occurrences and applies scoped edits and
    deletions to them.

    Every public method takes a `CalendarContext` and only touches rows of
    `context.household_id`.
    """

    def __init__(self, max_occurrences: int = MAX_OCCURRENCES):
        self.expander = RecurrenceExpander(max_occurrences=max_occurrences)
        self._edit_handlers: dict[str, EditHandler] = {
            EditScope.THIS_EVENT_ONLY: self._update_this_event_only,
            EditScope.THIS_AND_FUTURE: self._update_this_and_future,
            EditScope.ALL_EVENTS: self._update_all_events,
        }
        self._delete_handlers: dict[str, DeleteHandler] = {
            EditScope.THIS_EVENT_ONLY: self._delete_this_event_only,
            EditScope.THIS_AND_FUTURE: self._delete_this_and_future,
            EditScope.ALL_EVENTS: self._delete_all_events,
        }

    def ensure_household_members(self, context: CalendarContext, user_ids: Iterable[int]) -> None:
        """
        :raises HouseholdMembershipRequiredError: if any user is not a member of
            the context household.
        """
        user_ids = set(user_ids)
        found = set(
            HouseholdMembership.objects.filter(
                household_id=context.household_id, user_id__in=user_ids
            ).values_list("user_id", flat=True)
        )
        missing = user_ids - found
        if missing:
            raise HouseholdMembershipRequiredError(
                f"Users {', '.join(map(str, sorted(missing)))} do not belong to the household."
            )

    def get_event(self, context: CalendarContext, event_id: int) -> CalendarEvent:
        try:
            return CalendarEvent.objects.filter_by_household(context.household_id).get(
                id=event_id
            )
        except CalendarEvent.DoesNotExist as e:
            raise CalendarEventNotFoundError() from e

    def _validate_event_fields(
        self,
        *,
        title: str,
        description: str,
        location: str,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        recurrence_rule: str | None,
        recurrence_end_date: datetime.datetime | None,
        reminder_minutes_before: int | None,
        color: str,
    ) -> RecurrenceRule | None:
        """
        Validates the fields of a series and parses its recurrence rule.
        :return: the parsed rule, `None` for a single event.
        :raises CalendarEventValidationError: listing every invalid field.
        :raises InvalidRecurrenceRuleError: if the rule text is malformed.
        """
        errors = []
        if not title or not title.strip():
            errors.append("Title is required.")
        elif len(title) > MAX_TITLE_LENGTH:
            errors.append(f"Title must be at most {MAX_TITLE_LENGTH} characters.")
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            errors.append(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters.")
        if location and len(location) > MAX_LOCATION_LENGTH:
            errors.append(f"Location must be at most {MAX_LOCATION_LENGTH} characters.")
        if color and len(color) > MAX_COLOR_LENGTH:
            errors.append(f"Color must be at most {MAX_COLOR_LENGTH} characters.")
        if end_time <= start_time:
            errors.append("End time must be after start time.")
        if reminder_minutes_before is not None and not (
            MIN_REMINDER_MINUTES <= reminder_minutes_before <= MAX_REMINDER_MINUTES
        ):
            errors.append(
                f"Reminder must be between {MIN_REMINDER_MINUTES} and "
                f"{MAX_REMINDER_MINUTES} minutes before the event."
            )
        if recurrence_end_date is not None and recurrence_end_date < start_time:
            errors.append("Recurrence end date must not be before the start time.")

        if errors:
            raise CalendarEventValidationError(" ".join(errors))

        return parse_recurrence_rule(recurrence_rule)

    def create_event(
        self, context: CalendarContext, event_data: CalendarEventInputData
    ) -> CalendarEvent:
        """
        Create a series and its members. The acting user is added as an
        involved member unless listed explicitly.
        :param context: acting user and household.
        :param event_data: fields of the new series.
        :return: the created CalendarEvent.
        """
        rule = self._validate_event_fields(
            title=event_data.title,
            description=event_data.description,
            location=event_data.location,
            start_time=event_data.start_time,
            end_time=event_data.end_time,
            recurrence_rule=event_data.recurrence_rule,
            recurrence_end_date=event_data.recurrence_end_date,
            reminder_minutes_before=event_data.reminder_minutes_before,
            color=event_data.color,
        )

        members: dict[int, EventMemberInputData] = {}
        for member in event_data.members:
            if member.participation_type not in ParticipationType.values:
                raise CalendarEventValidationError(
                    f"Invalid participation type: {member.participation_type}"
                )
            members.setdefault(member.user_id, member)
        members.setdefault(context.user_id, EventMemberInputData(user_id=context.user_id))
        self.ensure_household_members(context, members.keys())

        with transaction.atomic():
            event = CalendarEvent.objects.create(
                household_id=context.household_id,
                created_by_id=context.user_id,
                title=event_data.title,
                description=event_data.description,
                location=event_data.location,
                start_time=event_data.start_time,
                end_time=event_data.end_time,
                is_all_day=event_data.is_all_day,
                recurrence_rule=rule.to_rrule_string() if rule else None,
                recurrence_end_date=event_data.recurrence_end_date,
                reminder_minutes_before=event_data.reminder_minutes_before,
                color=event_data.color,
            )
            CalendarEventMember.objects.bulk_create(
                [
                    CalendarEventMember(
                        event=event,
                        user_id=member.user_id,
                        participation_type=member.participation_type,
                    )
                    for member in members.values()
                ]
            )

        logger.info(
            "Created calendar event %s in household %s (recurring: %s)",
            event.id,
            context.household_id,
            event.is_recurring,
        )
        return event

    def update_event(
        self, context: CalendarContext, event_id: int, changes: EventChanges
    ) -> CalendarEvent:
        """Apply `changes` to the whole series, using absolute start/end values."""
        event = self.get_event(context, event_id)
        result = self._update_all_events(event, None, changes)
        return result.event

    def delete_event(self, context: CalendarContext, event_id: int) -> None:
        event = self.get_event(context, event_id)
        self._delete_all_events(event, event.start_time)

    def add_member(
        self,
        context: CalendarContext,
        event_id: int,
        user_id: int,
        participation_type: str = ParticipationType.INVOLVED,
    ) -> CalendarEventMember:
        if participation_type not in ParticipationType.values:
            raise CalendarEventValidationError(f"Invalid participation type: {participation_type}")
        event = self.get_event(context, event_id)
        self.ensure_household_members(context, [user_id])
        member, _ = CalendarEventMember.objects.update_or_create(
            event=event,
            user_id=user_id,
            defaults={"participation_type": participation_type},
        )
        return member

    def remove_member(self, context: CalendarContext, event_id: int, user_id: int) -> bool:
        event = self.get_event(context, event_id)
        deleted, _ = CalendarEventMember.objects.filter(event=event, user_id=user_id).delete()
        return bool(deleted)

    def expand_event(
        self,
        event: CalendarEvent,
        start: datetime.datetime,
        end: datetime.datetime,
        exceptions: Iterable[CalendarEventException] | None = None,
    ) -> list[Occurrence]:
        """
        Effective occurrences of one series overlapping `[start, end)`: raw
        expansion followed by the exception overlay.
        """
        exceptions = list(event.exceptions.all() if exceptions is None else exceptions)
        rule = event.get_recurrence_rule()
        overlay = ExceptionOverlay(exceptions)

        raw_occurrences = self.expander.expand(
            event.start_time,
            event.end_time,
            rule,
            start,
            end,
            recurrence_end=event.recurrence_end_date,
        )

        # occurrences moved into the window from outside of it
        expanded_starts = {raw.original_start for raw in raw_occurrences}
        for exception in exceptions:
            if exception.is_deleted or exception.original_start in expanded_starts:
                continue
            if exception.start_time is None and exception.end_time is None:
                continue
            candidate = RawOccurrence(
                original_start=exception.original_start,
                start=exception.original_start,
                end=exception.original_start + event.duration,
            )
            moved = overlay.apply_one(event, candidate)
            if moved is None or not (moved.start < end and moved.end > start):
                continue
            if OccurrenceValidator.is_occurrence(
                event.start_time, rule, exception.original_start, event.recurrence_end_date
            ):
                raw_occurrences.append(candidate)

        return [
            occurrence
            for occurrence in overlay.apply(event, raw_occurrences)
            if occurrence.start < end and occurrence.end > start
        ]

    def get_occurrences(
        self, context: CalendarContext, occurrence_filter: OccurrenceFilter
    ) -> list[Occurrence]:
        """
        List the effective occurrences of the household's series within the
        filter range, in chronological order.
        :raises ExpansionLimitExceededError: if a series has too many
            occurrences in the range.
        """
        if occurrence_filter.end <= occurrence_filter.start:
            raise CalendarEventValidationError("End of the range must be after its start.")

        events = CalendarEvent.objects.filter_by_household(context.household_id).filter_in_range(
            occurrence_filter.start, occurrence_filter.end
        )
        if occurrence_filter.user_id is not None:
            events = events.filter_by_member(
                occurrence_filter.user_id, occurrence_filter.participation_types
            )
        if occurrence_filter.event_ids is not None:
            events = events.filter(id__in=occurrence_filter.event_ids)

        occurrences: list[Occurrence] = []
        for event in events.prefetch_related("exceptions"):
            occurrences.extend(
                self.expand_event(event, occurrence_filter.start, occurrence_filter.end)
            )

        occurrences.sort(
            key=lambda occurrence: (occurrence.start, occurrence.event_id, occurrence.original_start)
        )
        return occurrences

    def _validate_occurrence(self, event: CalendarEvent, occurrence_start: datetime.datetime):
        if not OccurrenceValidator.is_occurrence(
            event.start_time,
            event.get_recurrence_rule(),
            occurrence_start,
            event.recurrence_end_date,
        ):
            raise OccurrenceNotFoundError(
                f"Event {event.id} has no occurrence starting at {occurrence_start.isoformat()}."
            )

    def apply_edit(
        self,
        context: CalendarContext,
        event_id: int,
        occurrence_start: datetime.datetime,
        scope: str,
        changes: EventChanges,
    ) -> EditResult:
        """
        Edit one occurrence, that occurrence and the following ones, or the whole
        series. Single events are always edited as a whole.
        :param context: acting user and household.
        :param event_id: ID of the series.
        :param occurrence_start: original start of the targeted occurrence.
        :param scope: one of `EditScope`.
        :param changes: field changes; start/end refer to the targeted occurrence.
        :raises OccurrenceNotFoundError: if the series has no such occurrence.
        """
        if scope not in EditScope.values:
            raise CalendarEventValidationError(f"Invalid edit scope: {scope}")

        event = self.get_event(context, event_id)
        self._validate_occurrence(event, occurrence_start)
        if not event.is_recurring:
            scope = EditScope.ALL_EVENTS

        return self._edit_handlers[scope](event, occurrence_start, changes)

    def apply_delete(
        self,
        context: CalendarContext,
        event_id: int,
        occurrence_start: datetime.datetime,
        scope: str,
    ) -> EditResult:
        """
        Delete one occurrence, that occurrence and the following ones, or the
        whole series.
        :raises OccurrenceNotFoundError: if the series has no such occurrence.
        """
        if scope not in EditScope.values:
            raise CalendarEventValidationError(f"Invalid edit scope: {scope}")

        event = self.get_event(context, event_id)
        self._validate_occurrence(event, occurrence_start)
        if not event.is_recurring:
            scope = EditScope.ALL_EVENTS

        return self._delete_handlers[scope](event, occurrence_start)

    def _update_this_event_only(
        self, event: CalendarEvent, occurrence_start: datetime.datetime, changes: EventChanges
    ) -> EditResult:
        if not changes.has_occurrence_overrides():
            raise CalendarEventValidationError("No occurrence fields to change.")

        with transaction.atomic():
            exception = (
                CalendarEventException.objects.select_for_update()
                .filter(event=event, original_start=occurrence_start)
                .first()
            ) or CalendarEventException(event=event, original_start=occurrence_start)

            current_start = exception.start_time or occurrence_start
            current_end = exception.end_time or current_start + event.duration
            if changes.start_time is not None:
                exception.start_time = changes.start_time
                if changes.end_time is None:
                    exception.end_time = changes.start_time + (current_end - current_start)
            if changes.end_time is not None:
                exception.end_time = changes.end_time
            for field_name in ("title", "description", "location", "is_all_day"):
                value = getattr(changes, field_name)
                if value is not None:
                    setattr(exception, field_name, value)
            exception.is_deleted = False

            effective_start = exception.start_time or occurrence_start
            effective_end = exception.end_time or effective_start + event.duration
            if effective_end <= effective_start:
                raise CalendarEventValidationError("End time must be after start time.")
            if exception.title is not None and not exception.title.strip():
                raise CalendarEventValidationError("Title is required.")

            exception.save()

        return EditResult(event=event, exception=exception)

    def _update_this_and_future(
        self, event: CalendarEvent, occurrence_start: datetime.datetime, changes: EventChanges
    ) -> EditResult:
        rule = event.get_recurrence_rule()
        if rule is None or not RecurrenceRuleSplitter.has_occurrences_before(
            rule, event.start_time, occurrence_start
        ):
            # the first occurrence onward is the whole series
            return self._update_all_events(event, occurrence_start, changes)

        target_exception = event.exceptions.filter(original_start=occurrence_start).first()
        effective_start = occurrence_start
        effective_end = occurrence_start + event.duration
        if target_exception is not None and not target_exception.is_deleted:
            effective_start = target_exception.start_time or occurrence_start
            effective_end = target_exception.end_time or effective_start + event.duration

        new_start = changes.start_time or effective_start
        new_end = changes.end_time or new_start + (effective_end - effective_start)
        # continuation keys are the old keys shifted by how far the anchor moved
        start_delta = new_start - occurrence_start

        if changes.recurrence_rule is not None:
            continuation_rule_text = changes.recurrence_rule or None
        else:
            continuation_rule = RecurrenceRuleSplitter.create_continuation_rule(
                rule, event.start_time, occurrence_start, new_start
            )
            continuation_rule_text = (
                continuation_rule.to_rrule_string() if continuation_rule else None
            )

        if changes.recurrence_end_date is not None:
            recurrence_end_date = changes.recurrence_end_date
        elif event.recurrence_end_date is not None and event.recurrence_end_date < new_start:
            # the inherited cap leaves nothing to repeat after the new anchor
            recurrence_end_date = None
            continuation_rule_text = None
        else:
            recurrence_end_date = event.recurrence_end_date

        fields = self._merge_series_fields(event, changes)
        parsed_rule = self._validate_event_fields(
            title=fields["title"],
            description=fields["description"],
            location=fields["location"],
            start_time=new_start,
            end_time=new_end,
            recurrence_rule=continuation_rule_text,
            recurrence_end_date=recurrence_end_date,
            reminder_minutes_before=fields["reminder_minutes_before"],
            color=fields["color"],
        )

        with transaction.atomic():
            event.recurrence_end_date = occurrence_start - SPLIT_CAP_OFFSET
            event.save(update_fields=["recurrence_end_date", "modified"])

            continuation = CalendarEvent.objects.create(
                household_id=event.household_id,
                created_by_id=event.created_by_id,
                parent_event=event,
                start_time=new_start,
                end_time=new_end,
                recurrence_rule=parsed_rule.to_rrule_string() if parsed_rule else None,
                recurrence_end_date=recurrence_end_date,
                **fields,
            )
            CalendarEventMember.objects.bulk_create(
                [
                    CalendarEventMember(
                        event=continuation,
                        user_id=member.user_id,
                        participation_type=member.participation_type,
                    )
                    for member in event.members.all()
                ]
            )

            moved_exceptions = 0
            for exception in event.exceptions.filter(original_start__gte=occurrence_start):
                if exception.original_start == occurrence_start and not exception.is_deleted:
                    # the continuation anchor already carries the target's times and the changes
                    self._clear_overridden_fields(exception, changes)
                    if not self._has_overrides(exception):
                        exception.delete()
                        continue
                exception.event = continuation
                exception.original_start = exception.original_start + start_delta
                exception.save()
                moved_exceptions += 1

        logger.info(
            "Split calendar event %s at %s into continuation %s (%s exceptions moved)",
            event.id,
            occurrence_start.isoformat(),
            continuation.id,
            moved_exceptions,
        )
        return EditResult(event=event, continuation=continuation)

    def _update_all_events(
        self,
        event: CalendarEvent,
        occurrence_start: datetime.datetime | None,
        changes: EventChanges,
    ) -> EditResult:
        # start/end changes are relative to the targeted occurrence when there is one
        reference_start = occurrence_start or event.start_time
        target_start = changes.start_time or reference_start
        target_end = changes.end_time or target_start + event.duration
        new_start = event.start_time + (target_start - reference_start)
        new_end = new_start + (target_end - target_start)

        if changes.recurrence_rule is not None:
            rule_text = changes.recurrence_rule or None
        else:
            rule_text = event.recurrence_rule
        recurrence_end_date = (
            changes.recurrence_end_date
            if changes.recurrence_end_date is not None
            else event.recurrence_end_date
        )

        first_continuation = event.continuations.order_by("start_time").first()
        if first_continuation is not None and (
            recurrence_end_date is None or recurrence_end_date >= first_continuation.start_time
        ):
            raise CalendarEventValidationError(
                "Recurrence end date cannot be extended past the start of the continuation series."
            )

        fields = self._merge_series_fields(event, changes)
        rule = self._validate_event_fields(
            title=fields["title"],
            description=fields["description"],
            location=fields["location"],
            start_time=new_start,
            end_time=new_end,
            recurrence_rule=rule_text,
            recurrence_end_date=recurrence_end_date,
            reminder_minutes_before=fields["reminder_minutes_before"],
            color=fields["color"],
        )

        for field_name, value in fields.items():
            setattr(event, field_name, value)
        event.start_time = new_start
        event.end_time = new_end
        event.recurrence_rule = rule.to_rrule_string() if rule else None
        event.recurrence_end_date = recurrence_end_date
        event.save()

        logger.info("Updated all occurrences of calendar event %s", event.id)
        return EditResult(event=event)

    @staticmethod
    def _clear_overridden_fields(exception: CalendarEventException, changes: EventChanges) -> None:
        exception.start_time = None
        exception.end_time = None
        for field_name in ("title", "description", "location", "is_all_day"):
            if getattr(changes, field_name) is not None:
                setattr(exception, field_name, None)

    @staticmethod
    def _has_overrides(exception: CalendarEventException) -> bool:
        return any(
            getattr(exception, field_name) is not None
            for field_name in ("title", "description", "location", "is_all_day")
        )

    @staticmethod
    def _merge_series_fields(event: CalendarEvent, changes: EventChanges) -> dict:
        """Series-level field values after applying `changes`."""
        merged = {}
        for field_name in ("title", "description", "location", "color", "is_all_day"):
            value = getattr(changes, field_name)
            merged[field_name] = value if value is not None else getattr(event, field_name)
        merged["reminder_minutes_before"] = CalendarEventService._resolve_reminder(event, changes)
        return merged

    @staticmethod
    def _resolve_reminder(event: CalendarEvent, changes: EventChanges) -> int | None:
        if changes.reminder_minutes_before is None:
            return event.reminder_minutes_before
        if changes.reminder_minutes_before == 0:
            return None
        return changes.reminder_minutes_before

    def _delete_this_event_only(
        self, event: CalendarEvent, occurrence_start: datetime.datetime
    ) -> EditResult:
        exception, _ = CalendarEventException.objects.update_or_create(
            event=event,
            original_start=occurrence_start,
            defaults={"is_deleted": True},
        )
        return EditResult(event=event, exception=exception)

    def _delete_this_and_future(
        self, event: CalendarEvent, occurrence_start: datetime.datetime
    ) -> EditResult:
        rule = event.get_recurrence_rule()
        if rule is None or not RecurrenceRuleSplitter.has_occurrences_before(
            rule, event.start_time, occurrence_start
        ):
            return self._delete_all_events(event, occurrence_start)

        event.recurrence_end_date = occurrence_start - SPLIT_CAP_OFFSET
        event.save(update_fields=["recurrence_end_date", "modified"])

        logger.info(
            "Capped calendar event %s before %s", event.id, occurrence_start.isoformat()
        )
        return EditResult(event=event)

    def _delete_all_events(
        self, event: CalendarEvent, occurrence_start: datetime.datetime
    ) -> EditResult:
        event_id = event.id
        with transaction.atomic():
            event.delete()

        logger.info("Deleted calendar event %s with its exceptions and members", event_id)
        return EditResult(event=None, deleted=True)
