from django.apps import AppConfig


class HouseholdCalendarConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "household_calendar"
    verbose_name = "Household Calendar"
