import datetime
import hashlib
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import transaction
from django.utils import timezone

from icalendar import Calendar

from household_calendar.constants import (
    CSS_COLOR_NAMES,
    DEFAULT_EXTERNAL_EVENT_TITLE,
    DEFAULT_SYNC_INTERVAL_MINUTES,
    MAX_EXTERNAL_UID_LENGTH,
    MAX_LOCATION_LENGTH,
    MAX_SYNC_INTERVAL_MINUTES,
    MAX_TITLE_LENGTH,
    MIN_SYNC_INTERVAL_MINUTES,
)
from household_calendar.exceptions import (
    ExternalCalendarParseError,
    ExternalCalendarSubscriptionNotFoundError,
    ExternalCalendarValidationError,
    SubscriptionLimitExceededError,
)
from household_calendar.models import ExternalCalendarEvent, ExternalCalendarSubscription
from household_calendar.services.dataclasses import (
    CalendarContext,
    ExternalCalendarSubscriptionInputData,
    ExternalEventInputData,
)


logger = logging.getLogger(__name__)

MAX_SYNC_STATUS_LENGTH = 500


def normalize_ics_url(url: str) -> str:
    """Calendar apps publish `webcal://` links for plain HTTPS feeds."""
    url = url.strip()
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://") :]
    return url


def normalize_color(color: str | None) -> str:
    """Convert CSS color names to hex, keeping hex values untouched."""
    if not color or not color.strip():
        return ""
    color = color.strip()
    if color.startswith("#"):
        return color
    hex_color = CSS_COLOR_NAMES.get(color.lower())
    if hex_color is not None:
        return hex_color
    # unknown names may be hex without the prefix
    return f"#{color}"


def normalize_external_uid(uid: str) -> str:
    """Replace UIDs too long to store with a stable digest, so re-imports still match."""
    if len(uid) <= MAX_EXTERNAL_UID_LENGTH:
        return uid
    return f"sha256-{hashlib.sha256(uid.encode()).hexdigest()}"


def _as_utc_datetime(value: datetime.date | datetime.datetime) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        if timezone.is_naive(value):
            return value.replace(tzinfo=datetime.UTC)
        return value.astimezone(datetime.UTC)
    return datetime.datetime.combine(value, datetime.time.min, tzinfo=datetime.UTC)


def parse_ics_events(ics_text: str | bytes) -> list[ExternalEventInputData]:
    """
    Parse the VEVENT components of an ICS document. Events without UID or
    DTSTART are skipped. Only the first instance of recurring external events
    is kept.
    :raises ExternalCalendarParseError: if the document is not valid ICS.
    """
    try:
        calendar = Calendar.from_ical(ics_text)
    except ValueError as e:
        raise ExternalCalendarParseError(str(e)) from e

    events = []
    for component in calendar.walk("VEVENT"):
        uid = component.get("UID")
        dtstart = component.get("DTSTART")
        if not uid or dtstart is None:
            continue

        is_all_day = not isinstance(dtstart.dt, datetime.datetime)
        start_time = _as_utc_datetime(dtstart.dt)
        dtend = component.get("DTEND")
        duration = component.get("DURATION")
        if dtend is not None:
            end_time = _as_utc_datetime(dtend.dt)
        elif duration is not None:
            end_time = start_time + duration.dt
        elif is_all_day:
            end_time = start_time + datetime.timedelta(days=1)
        else:
            end_time = start_time

        events.append(
            ExternalEventInputData(
                external_uid=str(uid),
                start_time=start_time,
                end_time=end_time,
                title=str(component.get("SUMMARY", "")),
                description=str(component.get("DESCRIPTION", "")),
                location=str(component.get("LOCATION", "")),
                is_all_day=is_all_day,
            )
        )
    return events


class ExternalCalendarService:
    """
    Subscriptions of household members to external ICS calendars and the
    import of their events, which count as busy time for the subscriber.
    Fetching the remote feed is up to the caller.
    """

    def __init__(self, max_subscriptions_per_user: int = 10):
        self.max_subscriptions_per_user = max_subscriptions_per_user

    def list_subscriptions(self, context: CalendarContext):
        return ExternalCalendarSubscription.objects.filter_by_household(
            context.household_id
        ).filter(user_id=context.user_id)

    def get_subscription(
        self, context: CalendarContext, subscription_id: int
    ) -> ExternalCalendarSubscription:
        try:
            return self.list_subscriptions(context).get(id=subscription_id)
        except ExternalCalendarSubscription.DoesNotExist as e:
            raise ExternalCalendarSubscriptionNotFoundError() from e

    def _validate_subscription_data(self, data: ExternalCalendarSubscriptionInputData) -> str:
        errors = []
        if not data.name or not data.name.strip():
            errors.append("Name is required.")
        elif len(data.name) > MAX_TITLE_LENGTH:
            errors.append(f"Name must be at most {MAX_TITLE_LENGTH} characters.")

        ics_url = normalize_ics_url(data.ics_url or "")
        try:
            URLValidator(schemes=["http", "https"])(ics_url)
        except DjangoValidationError:
            errors.append("ICS URL must be a valid http, https or webcal URL.")

        if data.sync_interval_minutes is not None and not (
            MIN_SYNC_INTERVAL_MINUTES <= data.sync_interval_minutes <= MAX_SYNC_INTERVAL_MINUTES
        ):
            errors.append(
                f"Sync interval must be between {MIN_SYNC_INTERVAL_MINUTES} and "
                f"{MAX_SYNC_INTERVAL_MINUTES} minutes."
            )

        if errors:
            raise ExternalCalendarValidationError(" ".join(errors))
        return ics_url

    def create_subscription(
        self, context: CalendarContext, data: ExternalCalendarSubscriptionInputData
    ) -> ExternalCalendarSubscription:
        """
        :raises SubscriptionLimitExceededError: if the user already has the
            maximum number of subscriptions.
        :raises ExternalCalendarValidationError: if any field is invalid.
        """
        if self.list_subscriptions(context).count() >= self.max_subscriptions_per_user:
            raise SubscriptionLimitExceededError(self.max_subscriptions_per_user)
        ics_url = self._validate_subscription_data(data)

        subscription = ExternalCalendarSubscription.objects.create(
            household_id=context.household_id,
            user_id=context.user_id,
            name=data.name.strip(),
            ics_url=ics_url,
            color=normalize_color(data.color),
            sync_interval_minutes=data.sync_interval_minutes or DEFAULT_SYNC_INTERVAL_MINUTES,
            is_active=data.is_active,
        )
        logger.info(
            "Created external calendar subscription %s for user %s",
            subscription.id,
            context.user_id,
        )
        return subscription

    def update_subscription(
        self,
        context: CalendarContext,
        subscription_id: int,
        data: ExternalCalendarSubscriptionInputData,
    ) -> ExternalCalendarSubscription:
        subscription = self.get_subscription(context, subscription_id)
        ics_url = self._validate_subscription_data(data)

        subscription.name = data.name.strip()
        subscription.ics_url = ics_url
        subscription.color = normalize_color(data.color)
        if data.sync_interval_minutes is not None:
            subscription.sync_interval_minutes = data.sync_interval_minutes
        subscription.is_active = data.is_active
        subscription.save()
        return subscription

    def delete_subscription(self, context: CalendarContext, subscription_id: int) -> None:
        subscription = self.get_subscription(context, subscription_id)
        subscription.delete()
        logger.info(
            "Deleted external calendar subscription %s of user %s",
            subscription_id,
            context.user_id,
        )

    def get_subscriptions_due_for_sync(self, now: datetime.datetime | None = None):
        return ExternalCalendarSubscription.objects.filter_due_for_sync(now or timezone.now())

    def import_events(
        self,
        subscription: ExternalCalendarSubscription,
        events: list[ExternalEventInputData],
        synced_at: datetime.datetime | None = None,
    ) -> ExternalCalendarSubscription:
        """
        Replace the imported events of the subscription with `events`. Events
        are matched by external UID, so importing the same data twice leaves
        the same rows. Rows whose UID is missing from `events` are removed.
        """
        synced_at = synced_at or timezone.now()
        events_by_uid = {
            normalize_external_uid(event.external_uid): event
            for event in events
            if event.external_uid
        }

        with transaction.atomic():
            removed, _ = (
                ExternalCalendarEvent.objects.filter(subscription=subscription)
                .exclude(external_uid__in=events_by_uid.keys())
                .delete()
            )
            for external_uid, event in events_by_uid.items():
                ExternalCalendarEvent.objects.update_or_create(
                    subscription=subscription,
                    external_uid=external_uid,
                    defaults={
                        "title": (event.title or DEFAULT_EXTERNAL_EVENT_TITLE)[:MAX_TITLE_LENGTH],
                        "description": event.description,
                        "location": event.location[:MAX_LOCATION_LENGTH],
                        "start_time": event.start_time,
                        "end_time": event.end_time,
                        "is_all_day": event.is_all_day,
                    },
                )

            subscription.last_synced_at = synced_at
            subscription.last_sync_status = f"Success ({len(events_by_uid)} events)"
            subscription.save(update_fields=["last_synced_at", "last_sync_status", "modified"])

        logger.info(
            "Imported %s events into external calendar subscription %s (%s removed)",
            len(events_by_uid),
            subscription.id,
            removed,
        )
        return subscription

    def import_ics_content(
        self,
        subscription: ExternalCalendarSubscription,
        ics_text: str | bytes,
        synced_at: datetime.datetime | None = None,
    ) -> ExternalCalendarSubscription:
        """
        Parse an ICS document and import its events into the subscription.
        :raises ExternalCalendarParseError: if the document cannot be parsed.
            The failure is recorded in the subscription sync status.
        """
        synced_at = synced_at or timezone.now()
        try:
            events = parse_ics_events(ics_text)
        except ExternalCalendarParseError as e:
            logger.warning(
                "Could not parse ICS data of external calendar subscription %s: %s",
                subscription.id,
                e,
            )
            subscription.last_synced_at = synced_at
            subscription.last_sync_status = f"Error: {e}"[:MAX_SYNC_STATUS_LENGTH]
            subscription.save(update_fields=["last_synced_at", "last_sync_status", "modified"])
            raise

        return self.import_events(subscription, events, synced_at=synced_at)
