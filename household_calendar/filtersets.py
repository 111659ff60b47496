from django_filters import rest_framework as filters

from household_calendar.constants import ParticipationType
from household_calendar.models import CalendarEvent


class CalendarEventFilterSet(filters.FilterSet):
    """
    FilterSet for CalendarEvent model. Filters apply to series, not to their
    occurrences; use the occurrences endpoint to list expanded occurrences.
    """

    start_time_range = filters.DateTimeFromToRangeFilter(
        field_name="start_time",
        label="Series start time range",
    )
    title = filters.CharFilter(
        field_name="title",
        lookup_expr="icontains",
        label="Filter by partial title match",
    )
    is_recurring = filters.BooleanFilter(
        method="filter_is_recurring",
        label="Only recurring (true) or single (false) events",
    )
    member = filters.NumberFilter(
        field_name="members__user_id",
        distinct=True,
        label="Filter by member user ID",
    )
    participation_type = filters.ChoiceFilter(
        field_name="members__participation_type",
        choices=ParticipationType.choices,
        distinct=True,
        label="Filter by member participation type",
    )

    class Meta:
        model = CalendarEvent
        fields = (
            "start_time_range",
            "title",
            "is_recurring",
            "member",
            "participation_type",
        )

    def filter_is_recurring(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter_recurring_objects()
        return queryset.filter_non_recurring_objects()
