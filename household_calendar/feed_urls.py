from django.urls import path

from household_calendar.feed_views import calendar_feed


app_name = "calendar_feed"

urlpatterns = [
    path("<slug:token>.ics", calendar_feed, name="feed"),
]
