from common.types import RouteDict

from .views import (
    AvailabilityViewSet,
    CalendarEventViewSet,
    CalendarFeedTokenViewSet,
    ExternalCalendarSubscriptionViewSet,
)


routes: list[RouteDict] = [
    {
        "regex": r"calendar-events",
        "viewset": CalendarEventViewSet,
        "basename": "CalendarEvents",
    },
    {
        "regex": r"availability",
        "viewset": AvailabilityViewSet,
        "basename": "Availability",
    },
    {
        "regex": r"calendar-feed-tokens",
        "viewset": CalendarFeedTokenViewSet,
        "basename": "CalendarFeedTokens",
    },
    {
        "regex": r"external-calendars",
        "viewset": ExternalCalendarSubscriptionViewSet,
        "basename": "ExternalCalendars",
    },
]
