from dependency_injector import containers, providers

from household_calendar.services.availability_service import AvailabilityService
from household_calendar.services.calendar_event_service import CalendarEventService
from household_calendar.services.calendar_feed_service import CalendarFeedService
from household_calendar.services.external_calendar_service import ExternalCalendarService


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    calendar_event_service = providers.Factory(
        CalendarEventService,
        max_occurrences=config.CALENDAR_MAX_OCCURRENCES,
    )

    availability_service = providers.Factory(
        AvailabilityService,
        calendar_event_service=calendar_event_service,
    )

    calendar_feed_service = providers.Factory(
        CalendarFeedService,
        calendar_event_service=calendar_event_service,
        past_days=config.CALENDAR_FEED_PAST_DAYS,
        future_days=config.CALENDAR_FEED_FUTURE_DAYS,
    )

    external_calendar_service = providers.Factory(
        ExternalCalendarService,
        max_subscriptions_per_user=config.CALENDAR_MAX_SUBSCRIPTIONS_PER_USER,
    )


container: AppContainer | None = None  # set during app startup
