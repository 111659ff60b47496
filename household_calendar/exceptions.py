from django.core.exceptions import ImproperlyConfigured


class CalendarServiceNotInjectedError(ImproperlyConfigured):
    pass


class CalendarError(Exception):
    """Base exception for household calendar errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


class RecurrenceError(CalendarError):
    """Base class for recurrence related errors"""

    pass


class InvalidRecurrenceRuleError(RecurrenceError):
    default_message = "Invalid recurrence rule."


class ExpansionLimitExceededError(RecurrenceError):
    default_message = (
        "Range too large for indefinite series. Narrow the requested window and try again."
    )

    def __init__(self, limit: int | None = None, message: str | None = None):
        self.limit = limit
        if message is None and limit is not None:
            message = (
                f"Range too large for indefinite series: more than {limit} occurrences. "
                "Narrow the requested window and try again."
            )
        super().__init__(message)


class EventManagementError(CalendarError):
    """Base class for event management errors"""

    pass


class CalendarEventValidationError(EventManagementError):
    default_message = "Invalid calendar event."


class OccurrenceNotFoundError(EventManagementError):
    default_message = "The requested occurrence does not exist in this series."


class CalendarEventNotFoundError(EventManagementError):
    default_message = "Calendar event not found."


class HouseholdMembershipRequiredError(CalendarError):
    default_message = "All users must belong to the household."


class AvailabilityQueryError(CalendarError):
    default_message = "Invalid availability query."


class FeedTokenInvalidError(CalendarError):
    default_message = "Calendar feed token is missing or revoked."


class FeedTokenNotFoundError(CalendarError):
    default_message = "Calendar feed token not found."


class ExternalCalendarError(CalendarError):
    """Base class for external calendar subscription errors"""

    pass


class SubscriptionLimitExceededError(ExternalCalendarError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Maximum of {limit} external calendar subscriptions per user reached."
        )


class ExternalCalendarValidationError(ExternalCalendarError):
    default_message = "Invalid external calendar subscription."


class ExternalCalendarParseError(ExternalCalendarError):
    default_message = "Could not parse external calendar data."


class ExternalCalendarSubscriptionNotFoundError(ExternalCalendarError):
    default_message = "External calendar subscription not found."
