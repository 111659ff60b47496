import datetime
from collections.abc import Iterable

from django.db.models import DateTimeField, Exists, ExpressionWrapper, F, OuterRef, Q
from django.db.models.query import QuerySet

from households.querysets import BaseHouseholdModelQuerySet


class CalendarEventQuerySet(BaseHouseholdModelQuerySet):
    """
    Custom QuerySet for CalendarEvent model to handle specific queries.
    """

    def filter_recurring_objects(self):
        """Filter to get series that have a recurrence rule."""
        return self.exclude(Q(recurrence_rule__isnull=True) | Q(recurrence_rule=""))

    def filter_non_recurring_objects(self):
        """Filter to get single, non-recurring events."""
        return self.filter(Q(recurrence_rule__isnull=True) | Q(recurrence_rule=""))

    def filter_in_range(self, start: datetime.datetime, end: datetime.datetime):
        """
        Pre-filters series that may have an occurrence in `[start, end)`.
        Single events must overlap the range. Recurring series must start before
        its end and, when capped, have their last occurrence reach past its start
        or an exception that may move an occurrence into the range. Expansion
        decides about the recurring candidates.
        """
        exception_model = self.model._meta.get_field("exceptions").related_model
        single = Q(recurrence_rule__isnull=True) | Q(recurrence_rule="")
        open_ended = (
            Q(recurrence_end_date__isnull=True)
            | Q(last_occurrence_end__gt=start)
            | Q(has_moved_exception=True)
        )
        return self.alias(
            last_occurrence_end=ExpressionWrapper(
                F("recurrence_end_date") + (F("end_time") - F("start_time")),
                output_field=DateTimeField(),
            ),
            has_moved_exception=Exists(
                exception_model.objects.filter(
                    Q(start_time__lt=end) | Q(end_time__gt=start),
                    event=OuterRef("pk"),
                    is_deleted=False,
                )
            ),
        ).filter(
            (single & Q(start_time__lt=end, end_time__gt=start))
            | (~single & Q(start_time__lt=end) & open_ended)
        )

    def filter_by_member(
        self, user_id: int, participation_types: Iterable[str] | None = None
    ):
        """
        Filters events where the user is a member, optionally restricted to the
        given participation types.
        """
        lookup = Q(members__user_id=user_id)
        if participation_types is not None:
            lookup &= Q(members__participation_type__in=list(participation_types))
        return self.filter(lookup).distinct()


class ExternalCalendarSubscriptionQuerySet(BaseHouseholdModelQuerySet):
    def filter_active(self):
        return self.filter(is_active=True)

    def filter_due_for_sync(self, now: datetime.datetime):
        """
        Active subscriptions that were never synced or whose sync interval has
        elapsed since the last sync.
        """
        due_ids = [
            subscription.id
            for subscription in self.filter_active().filter(last_synced_at__isnull=False)
            if subscription.last_synced_at
            + datetime.timedelta(minutes=subscription.sync_interval_minutes)
            <= now
        ]
        return self.filter_active().filter(Q(last_synced_at__isnull=True) | Q(id__in=due_ids))


class ExternalCalendarEventQuerySet(QuerySet):
    def filter_in_range(self, start: datetime.datetime, end: datetime.datetime):
        return self.filter(start_time__lt=end, end_time__gt=start)

    def filter_busy_for_user(self, household_id: int, user_id: int):
        """Events of the user's active subscriptions within the household."""
        return self.filter(
            subscription__household_id=household_id,
            subscription__user_id=user_id,
            subscription__is_active=True,
        )


class CalendarFeedTokenQuerySet(BaseHouseholdModelQuerySet):
    def filter_valid(self):
        return self.filter(is_revoked=False)
