import datetime

from django.db.models import TextChoices


class RecurrenceFrequency(TextChoices):
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"
    YEARLY = "YEARLY", "Yearly"


class RecurrenceWeekday(TextChoices):
    MONDAY = "MO", "Monday"
    TUESDAY = "TU", "Tuesday"
    WEDNESDAY = "WE", "Wednesday"
    THURSDAY = "TH", "Thursday"
    FRIDAY = "FR", "Friday"
    SATURDAY = "SA", "Saturday"
    SUNDAY = "SU", "Sunday"


class ParticipationType(TextChoices):
    INVOLVED = "involved", "Involved"
    AWARE = "aware", "Aware"


class EditScope(TextChoices):
    THIS_EVENT_ONLY = "this_event_only", "This event only"
    THIS_AND_FUTURE = "this_and_future", "This and future events"
    ALL_EVENTS = "all_events", "All events"


class BusySource(TextChoices):
    EVENT = "event", "Calendar event"
    EXTERNAL = "external", "External calendar"


MAX_RECURRENCE_RULE_LENGTH = 500
MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 5000
MAX_LOCATION_LENGTH = 500
MAX_EXTERNAL_UID_LENGTH = 500
MAX_COLOR_LENGTH = 50
MIN_REMINDER_MINUTES = 1
MAX_REMINDER_MINUTES = 10080

MIN_SLOT_DURATION = datetime.timedelta(minutes=1)
MAX_SLOT_DURATION = datetime.timedelta(minutes=1440)
MAX_SLOT_SEARCH_RANGE = datetime.timedelta(days=30)
MAX_SLOT_RESULTS = 50

MIN_SYNC_INTERVAL_MINUTES = 15
MAX_SYNC_INTERVAL_MINUTES = 1440
DEFAULT_SYNC_INTERVAL_MINUTES = 60

# one second before the split occurrence, so the capped series never includes it
SPLIT_CAP_OFFSET = datetime.timedelta(seconds=1)

DEFAULT_EXTERNAL_EVENT_TITLE = "(No Title)"

CSS_COLOR_NAMES = {
    "red": "#F44336",
    "blue": "#2196F3",
    "green": "#4CAF50",
    "yellow": "#FFEB3B",
    "orange": "#FF9800",
    "purple": "#9C27B0",
    "pink": "#E91E63",
    "teal": "#009688",
    "cyan": "#00BCD4",
    "brown": "#795548",
    "gray": "#9E9E9E",
    "grey": "#9E9E9E",
    "indigo": "#3F51B5",
    "amber": "#FFC107",
    "black": "#000000",
    "white": "#FFFFFF",
    "lime": "#CDDC39",
    "navy": "#1A237E",
    "maroon": "#880E4F",
    "olive": "#827717",
    "aqua": "#00BCD4",
    "silver": "#BDBDBD",
    "fuchsia": "#E91E63",
    "coral": "#FF7043",
    "salmon": "#FF8A65",
    "gold": "#FFD600",
    "tomato": "#FF5722",
    "violet": "#7C4DFF",
    "crimson": "#D32F2F",
    "khaki": "#F0E68C",
}
