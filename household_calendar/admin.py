from django.contrib import admin

from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    CalendarFeedToken,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)


class CalendarEventMemberInline(admin.TabularInline):
    model = CalendarEventMember
    extra = 0
    raw_id_fields = ("user",)


class CalendarEventExceptionInline(admin.TabularInline):
    model = CalendarEventException
    extra = 0
    fields = ("original_start", "is_deleted", "title", "start_time", "end_time")


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "title",
        "household",
        "start_time",
        "end_time",
        "recurrence_rule",
        "recurrence_end_date",
    )
    list_filter = ("is_all_day",)
    search_fields = ("title", "description")
    raw_id_fields = ("household", "created_by", "parent_event")
    inlines = (CalendarEventMemberInline, CalendarEventExceptionInline)


class ExternalCalendarEventInline(admin.TabularInline):
    model = ExternalCalendarEvent
    extra = 0
    max_num = 20
    fields = ("external_uid", "title", "start_time", "end_time", "is_all_day")
    readonly_fields = fields


@admin.register(ExternalCalendarSubscription)
class ExternalCalendarSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "user", "is_active", "last_synced_at", "last_sync_status")
    list_filter = ("is_active",)
    search_fields = ("name", "ics_url")
    raw_id_fields = ("household", "user")
    readonly_fields = ("last_synced_at", "last_sync_status")
    inlines = (ExternalCalendarEventInline,)


@admin.register(CalendarFeedToken)
class CalendarFeedTokenAdmin(admin.ModelAdmin):
    list_display = ("id", "label", "user", "is_revoked", "last_accessed_at", "created")
    list_filter = ("is_revoked",)
    raw_id_fields = ("household", "user")
    readonly_fields = ("token", "last_accessed_at")
