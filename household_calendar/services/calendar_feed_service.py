import datetime
import hashlib
import logging
import secrets

from django.db.models import Max
from django.utils import timezone

from icalendar import Alarm, Calendar, Event

from household_calendar.exceptions import FeedTokenInvalidError, FeedTokenNotFoundError
from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarFeedToken,
    ExternalCalendarEvent,
)
from household_calendar.services.calendar_event_service import CalendarEventService
from household_calendar.services.dataclasses import (
    CalendarContext,
    IcsFeed,
    Occurrence,
    OccurrenceFilter,
)


logger = logging.getLogger(__name__)

FEED_PRODID = "-//Household API//Home Calendar//EN"
FEED_UID_DOMAIN = "household-calendar"
FEED_TOKEN_BYTES = 32


def _to_utc(value: datetime.datetime) -> datetime.datetime:
    return value.astimezone(datetime.UTC)


def build_occurrence_uid(occurrence: Occurrence) -> str:
    original_start = _to_utc(occurrence.original_start)
    return f"{occurrence.event_id}-{original_start:%Y%m%dT%H%M%SZ}@{FEED_UID_DOMAIN}"


def build_external_event_uid(event: ExternalCalendarEvent) -> str:
    return f"ext-{event.subscription_id}-{event.external_uid}"


def build_content_digest(content: bytes) -> str:
    """SHA-256 of a rendered feed, ignoring the DTSTAMP lines that change on every render."""
    lines = [line for line in content.splitlines() if not line.startswith(b"DTSTAMP")]
    return hashlib.sha256(b"\n".join(lines)).hexdigest()


def _all_day_dates(
    start: datetime.datetime, end: datetime.datetime
) -> tuple[datetime.date, datetime.date]:
    """DATE values for an all-day entry, with an exclusive end of at least one day."""
    start_date = _to_utc(start).date()
    end_utc = _to_utc(end)
    end_date = end_utc.date()
    if end_utc.time() != datetime.time(0, 0):
        end_date += datetime.timedelta(days=1)
    return start_date, max(end_date, start_date + datetime.timedelta(days=1))


class CalendarFeedService:
    """
    Manages the secret tokens of calendar feeds and renders a user's calendar
    as an RFC 5545 document for calendar clients.
    """

    def __init__(
        self,
        calendar_event_service: CalendarEventService,
        past_days: int = 30,
        future_days: int = 90,
    ):
        self.calendar_event_service = calendar_event_service
        self.past_days = past_days
        self.future_days = future_days

    def create_token(self, context: CalendarContext, label: str = "") -> CalendarFeedToken:
        token = CalendarFeedToken.objects.create(
            household_id=context.household_id,
            user_id=context.user_id,
            token=secrets.token_urlsafe(FEED_TOKEN_BYTES),
            label=label,
        )
        logger.info("Created calendar feed token %s for user %s", token.id, context.user_id)
        return token

    def list_tokens(self, context: CalendarContext):
        return CalendarFeedToken.objects.filter_by_household(context.household_id).filter(
            user_id=context.user_id
        )

    def _get_user_token(self, context: CalendarContext, token_id: int) -> CalendarFeedToken:
        try:
            return self.list_tokens(context).get(id=token_id)
        except CalendarFeedToken.DoesNotExist as e:
            raise FeedTokenNotFoundError() from e

    def revoke_token(self, context: CalendarContext, token_id: int) -> CalendarFeedToken:
        token = self._get_user_token(context, token_id)
        token.is_revoked = True
        token.save(update_fields=["is_revoked", "modified"])
        logger.info("Revoked calendar feed token %s of user %s", token.id, context.user_id)
        return token

    def delete_token(self, context: CalendarContext, token_id: int) -> None:
        token = self._get_user_token(context, token_id)
        token.delete()
        logger.info("Deleted calendar feed token %s of user %s", token_id, context.user_id)

    def get_valid_token(self, token: str) -> CalendarFeedToken:
        """
        :raises FeedTokenInvalidError: if the token does not exist or was revoked.
        """
        if not token:
            raise FeedTokenInvalidError()
        feed_token = (
            CalendarFeedToken.objects.filter_valid().select_related("user").filter(token=token).first()
        )
        if feed_token is None:
            raise FeedTokenInvalidError()
        return feed_token

    def generate_ics_feed(
        self, token: str, now: datetime.datetime | None = None
    ) -> IcsFeed | None:
        """
        Render the feed of the token's user: every occurrence of the household
        series the user is a member of and every event of the user's active
        external subscriptions, from `past_days` before to `future_days` after
        `now`.
        :param token: secret feed token.
        :param now: reference instant, defaults to the current time.
        :return: the rendered feed, or `None` if the token is unknown or revoked.
        """
        try:
            feed_token = self.get_valid_token(token)
        except FeedTokenInvalidError:
            logger.warning("Calendar feed requested with an invalid or revoked token")
            return None

        now = now or timezone.now()
        range_start = now - datetime.timedelta(days=self.past_days)
        range_end = now + datetime.timedelta(days=self.future_days)
        context = CalendarContext(household_id=feed_token.household_id, user_id=feed_token.user_id)

        occurrences = self.calendar_event_service.get_occurrences(
            context, OccurrenceFilter(start=range_start, end=range_end, user_id=feed_token.user_id)
        )
        external_events = list(
            ExternalCalendarEvent.objects.filter_busy_for_user(
                feed_token.household_id, feed_token.user_id
            ).filter_in_range(range_start, range_end)
        )

        calendar = Calendar()
        calendar.add("prodid", FEED_PRODID)
        calendar.add("version", "2.0")
        calendar.add("calscale", "GREGORIAN")
        calendar.add("method", "PUBLISH")
        calendar.add("x-wr-calname", f"{feed_token.user.get_display_name()} Home Calendar")
        calendar.add("x-wr-timezone", "UTC")

        for occurrence in occurrences:
            calendar.add_component(self._build_occurrence_component(occurrence, now))
        for external_event in external_events:
            calendar.add_component(self._build_external_component(external_event, now))

        content = calendar.to_ical()
        content_digest = build_content_digest(content)
        last_modified = self._get_last_modified(
            feed_token,
            content_digest,
            self._get_rows_last_modified(occurrences, external_events),
            now,
        )

        feed_token.last_accessed_at = now
        feed_token.content_digest = content_digest
        feed_token.content_last_modified = last_modified
        feed_token.save(
            update_fields=["last_accessed_at", "content_digest", "content_last_modified"]
        )

        return IcsFeed(content=content, last_modified=last_modified, etag=content_digest)

    @staticmethod
    def _add_times(
        component: Event, start: datetime.datetime, end: datetime.datetime, is_all_day: bool
    ):
        if is_all_day:
            start_date, end_date = _all_day_dates(start, end)
            component.add("dtstart", start_date)
            component.add("dtend", end_date)
        else:
            component.add("dtstart", _to_utc(start))
            component.add("dtend", _to_utc(end))

    def _build_occurrence_component(self, occurrence: Occurrence, now: datetime.datetime) -> Event:
        component = Event()
        component.add("uid", build_occurrence_uid(occurrence))
        component.add("dtstamp", _to_utc(now))
        component.add("summary", occurrence.title)
        self._add_times(component, occurrence.start, occurrence.end, occurrence.is_all_day)
        if occurrence.description:
            component.add("description", occurrence.description)
        if occurrence.location:
            component.add("location", occurrence.location)

        if occurrence.reminder_minutes_before:
            alarm = Alarm()
            alarm.add("action", "DISPLAY")
            alarm.add("description", occurrence.title)
            alarm.add("trigger", datetime.timedelta(minutes=-occurrence.reminder_minutes_before))
            component.add_component(alarm)
        return component

    def _build_external_component(
        self, external_event: ExternalCalendarEvent, now: datetime.datetime
    ) -> Event:
        component = Event()
        component.add("uid", build_external_event_uid(external_event))
        component.add("dtstamp", _to_utc(now))
        component.add("summary", external_event.title)
        self._add_times(
            component, external_event.start_time, external_event.end_time, external_event.is_all_day
        )
        if external_event.description:
            component.add("description", external_event.description)
        if external_event.location:
            component.add("location", external_event.location)
        return component

    @staticmethod
    def _get_rows_last_modified(
        occurrences: list[Occurrence],
        external_events: list[ExternalCalendarEvent],
    ) -> datetime.datetime | None:
        """Most recent modification of the rows the feed was built from."""
        event_ids = {occurrence.event_id for occurrence in occurrences}
        timestamps = [external_event.modified for external_event in external_events]
        if event_ids:
            timestamps.append(
                CalendarEvent.objects.filter(id__in=event_ids).aggregate(latest=Max("modified"))[
                    "latest"
                ]
            )
            timestamps.append(
                CalendarEventException.objects.filter(event_id__in=event_ids).aggregate(
                    latest=Max("modified")
                )["latest"]
            )
        return max((value for value in timestamps if value is not None), default=None)

    @staticmethod
    def _get_last_modified(
        feed_token: CalendarFeedToken,
        content_digest: str,
        rows_last_modified: datetime.datetime | None,
        now: datetime.datetime,
    ) -> datetime.datetime:
        """
        Last-Modified of the feed, to the second.

        Rows removed from the feed leave no timestamp behind, so any change of the
        rendered content moves the value strictly past the one served before.
        """
        if feed_token.content_digest and feed_token.content_last_modified is not None:
            previous = _to_utc(feed_token.content_last_modified)
            if feed_token.content_digest == content_digest:
                return previous
            changed_at = _to_utc(max(now, rows_last_modified or now)).replace(microsecond=0)
            return max(changed_at, previous + datetime.timedelta(seconds=1))
        return _to_utc(rows_last_modified or now).replace(microsecond=0)
