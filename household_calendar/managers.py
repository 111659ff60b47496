import datetime
from collections.abc import Iterable

from django.db.models import Manager

from household_calendar.querysets import (
    CalendarEventQuerySet,
    CalendarFeedTokenQuerySet,
    ExternalCalendarEventQuerySet,
    ExternalCalendarSubscriptionQuerySet,
)
from households.managers import BaseHouseholdModelManager


class CalendarEventManager(BaseHouseholdModelManager):
    """
    Custom manager for CalendarEvent model to handle specific queries.
    """

    def get_queryset(self) -> CalendarEventQuerySet:
        return CalendarEventQuerySet(self.model, using=self._db)

    def filter_recurring_objects(self):
        return self.get_queryset().filter_recurring_objects()

    def filter_non_recurring_objects(self):
        return self.get_queryset().filter_non_recurring_objects()

    def filter_in_range(self, start: datetime.datetime, end: datetime.datetime):
        return self.get_queryset().filter_in_range(start, end)

    def filter_by_member(self, user_id: int, participation_types: Iterable[str] | None = None):
        return self.get_queryset().filter_by_member(user_id, participation_types)


class ExternalCalendarSubscriptionManager(BaseHouseholdModelManager):
    def get_queryset(self) -> ExternalCalendarSubscriptionQuerySet:
        return ExternalCalendarSubscriptionQuerySet(self.model, using=self._db)

    def filter_active(self):
        return self.get_queryset().filter_active()

    def filter_due_for_sync(self, now: datetime.datetime):
        return self.get_queryset().filter_due_for_sync(now)


class ExternalCalendarEventManager(Manager):
    def get_queryset(self) -> ExternalCalendarEventQuerySet:
        return ExternalCalendarEventQuerySet(self.model, using=self._db)

    def filter_in_range(self, start: datetime.datetime, end: datetime.datetime):
        return self.get_queryset().filter_in_range(start, end)

    def filter_busy_for_user(self, household_id: int, user_id: int):
        return self.get_queryset().filter_busy_for_user(household_id, user_id)


class CalendarFeedTokenManager(BaseHouseholdModelManager):
    def get_queryset(self) -> CalendarFeedTokenQuerySet:
        return CalendarFeedTokenQuerySet(self.model, using=self._db)

    def filter_valid(self):
        return self.get_queryset().filter_valid()
