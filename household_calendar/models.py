import datetime

from django.conf import settings
from django.db import models

from common.models import BaseModel
from household_calendar.constants import (
    DEFAULT_SYNC_INTERVAL_MINUTES,
    MAX_COLOR_LENGTH,
    MAX_EXTERNAL_UID_LENGTH,
    MAX_LOCATION_LENGTH,
    MAX_RECURRENCE_RULE_LENGTH,
    MAX_TITLE_LENGTH,
    ParticipationType,
)
from household_calendar.managers import (
    CalendarEventManager,
    CalendarFeedTokenManager,
    ExternalCalendarEventManager,
    ExternalCalendarSubscriptionManager,
)
from household_calendar.recurrence_utils import RecurrenceRule, parse_recurrence_rule
from households.models import HouseholdModel


class CalendarEvent(HouseholdModel):
    """
    A series: a single event or the definition of a recurring one. Occurrences
    are never stored; they are generated from `start_time`, `end_time` and
    `recurrence_rule`, then overlaid with `CalendarEventException` rows.
    """

    title = models.CharField(max_length=MAX_TITLE_LENGTH)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=MAX_LOCATION_LENGTH, blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    is_all_day = models.BooleanField(default=False)
    recurrence_rule = models.CharField(
        max_length=MAX_RECURRENCE_RULE_LENGTH,
        null=True,
        blank=True,
        help_text="RRULE text (FREQ, INTERVAL, BYDAY, BYMONTHDAY, COUNT, UNTIL). Empty for single events.",
    )
    recurrence_end_date = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Occurrences starting after this instant are not generated. Set when the series is split.",
    )
    reminder_minutes_before = models.PositiveIntegerField(null=True, blank=True)
    color = models.CharField(max_length=MAX_COLOR_LENGTH, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="created_calendar_events",
    )
    parent_event = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="continuations",
        help_text="If this is a continuation of a split series",
    )

    objects: CalendarEventManager = CalendarEventManager()

    class Meta:
        ordering = ("start_time", "id")

    def __str__(self):
        return f"{self.title} ({self.start_time.isoformat()})"

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def duration(self) -> datetime.timedelta:
        return self.end_time - self.start_time

    def get_recurrence_rule(self) -> RecurrenceRule | None:
        return parse_recurrence_rule(self.recurrence_rule)


class CalendarEventMember(BaseModel):
    """
    A user on an event. Involved members are busy during the event, aware
    members only see it.
    """

    event = models.ForeignKey(
        CalendarEvent,
        on_delete=models.CASCADE,
        related_name="members",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_event_memberships",
    )
    participation_type = models.CharField(
        max_length=20,
        choices=ParticipationType,
        default=ParticipationType.INVOLVED,
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="unique_calendar_event_member"),
        ]

    def __str__(self):
        return f"{self.user} on {self.event_id} ({self.participation_type})"


class CalendarEventException(BaseModel):
    """
    Override or deletion of one occurrence of a series, keyed by the original
    start of that occurrence. Null override fields fall back to the series.
    """

    event = models.ForeignKey(
        CalendarEvent,
        on_delete=models.CASCADE,
        related_name="exceptions",
    )
    original_start = models.DateTimeField(
        help_text="Start of the occurrence as generated by the recurrence rule",
    )
    is_deleted = models.BooleanField(default=False)
    title = models.CharField(max_length=MAX_TITLE_LENGTH, null=True, blank=True)
    description = models.TextField(null=True, blank=True)
    location = models.CharField(max_length=MAX_LOCATION_LENGTH, null=True, blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    is_all_day = models.BooleanField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["event", "original_start"], name="unique_calendar_event_exception"
            ),
        ]
        ordering = ("original_start",)

    def __str__(self):
        state = "deleted" if self.is_deleted else "modified"
        return f"{self.event_id} at {self.original_start.isoformat()} ({state})"


class ExternalCalendarSubscription(HouseholdModel):
    """
    An ICS feed a user subscribed to. Its events are imported by a sync
    collaborator and always count as busy time for the user.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="external_calendar_subscriptions",
    )
    name = models.CharField(max_length=255)
    ics_url = models.URLField(max_length=2000)
    color = models.CharField(max_length=MAX_COLOR_LENGTH, blank=True)
    sync_interval_minutes = models.PositiveIntegerField(default=DEFAULT_SYNC_INTERVAL_MINUTES)
    last_synced_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)

    objects: ExternalCalendarSubscriptionManager = ExternalCalendarSubscriptionManager()

    class Meta:
        ordering = ("name", "id")

    def __str__(self):
        return f"{self.name} ({self.user})"


class ExternalCalendarEvent(BaseModel):
    subscription = models.ForeignKey(
        ExternalCalendarSubscription,
        on_delete=models.CASCADE,
        related_name="events",
    )
    external_uid = models.CharField(
        max_length=MAX_EXTERNAL_UID_LENGTH,
        help_text="UID of the event in the external feed, used to deduplicate re-imports",
    )
    title = models.CharField(max_length=MAX_TITLE_LENGTH, blank=True)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=MAX_LOCATION_LENGTH, blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    is_all_day = models.BooleanField(default=False)

    objects: ExternalCalendarEventManager = ExternalCalendarEventManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["subscription", "external_uid"],
                name="unique_external_calendar_event_uid",
            ),
        ]
        ordering = ("start_time", "id")

    def __str__(self):
        return f"{self.title} ({self.external_uid})"


class CalendarFeedToken(HouseholdModel):
    """
    Opaque token that grants read access to a user's ICS feed without any other
    authentication. Revoked tokens make the feed return not-found.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_feed_tokens",
    )
    token = models.CharField(max_length=64, unique=True)
    label = models.CharField(max_length=100, blank=True)
    is_revoked = models.BooleanField(default=False)
    last_accessed_at = models.DateTimeField(null=True, blank=True)
    content_digest = models.CharField(max_length=64, blank=True)
    content_last_modified = models.DateTimeField(null=True, blank=True)

    objects: CalendarFeedTokenManager = CalendarFeedTokenManager()

    class Meta:
        ordering = ("-created",)

    def __str__(self):
        return f"{self.label or 'Feed token'} for {self.user}"
