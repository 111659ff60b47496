from typing import TYPE_CHECKING, Annotated

from django.urls import reverse

from dependency_injector.wiring import Provide, inject
from rest_framework import serializers

from household_calendar.constants import (
    MAX_SLOT_DURATION,
    MAX_SLOT_RESULTS,
    MIN_SLOT_DURATION,
    EditScope,
    ParticipationType,
)
from household_calendar.exceptions import (
    CalendarEventValidationError,
    CalendarServiceNotInjectedError,
    ExternalCalendarError,
    HouseholdMembershipRequiredError,
    RecurrenceError,
)
from household_calendar.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    CalendarFeedToken,
    ExternalCalendarSubscription,
)
from household_calendar.services.dataclasses import (
    AvailableSlot,
    CalendarContext,
    CalendarEventInputData,
    EventChanges,
    EventMemberInputData,
    ExternalCalendarSubscriptionInputData,
)


if TYPE_CHECKING:
    from household_calendar.services.calendar_event_service import CalendarEventService
    from household_calendar.services.calendar_feed_service import CalendarFeedService
    from household_calendar.services.external_calendar_service import ExternalCalendarService


EVENT_INPUT_ERRORS = (
    CalendarEventValidationError,
    RecurrenceError,
    HouseholdMembershipRequiredError,
)


def get_calendar_context(serializer: serializers.BaseSerializer) -> CalendarContext:
    return serializer.context["calendar_context"]


class CalendarEventMemberSerializer(serializers.ModelSerializer):
    participation_type = serializers.ChoiceField(
        choices=ParticipationType.choices, default=ParticipationType.INVOLVED
    )

    class Meta:
        model = CalendarEventMember
        fields = ("user", "participation_type")


class CalendarEventSerializer(serializers.ModelSerializer):
    members = CalendarEventMemberSerializer(many=True, required=False)
    recurrence_rule = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        help_text="RRULE string, e.g. FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=6",
    )
    is_recurring = serializers.BooleanField(read_only=True)

    class Meta:
        model = CalendarEvent
        fields = (
            "id",
            "title",
            "description",
            "location",
            "start_time",
            "end_time",
            "is_all_day",
            "recurrence_rule",
            "recurrence_end_date",
            "reminder_minutes_before",
            "color",
            "members",
            "is_recurring",
            "created_by",
            "parent_event",
            "created",
            "modified",
        )
        read_only_fields = ("id", "created_by", "parent_event", "created", "modified")

    @inject
    def __init__(
        self,
        *args,
        calendar_event_service: Annotated[
            "CalendarEventService | None", Provide["calendar_event_service"]
        ] = None,
        **kwargs,
    ):
        self.calendar_event_service = calendar_event_service
        super().__init__(*args, **kwargs)

    def validate(self, attrs):
        if self.instance is not None and "members" in attrs:
            raise serializers.ValidationError(
                "Members can't be changed here. Use the members endpoints instead."
            )
        return attrs

    def create(self, validated_data):
        if not self.calendar_event_service:
            raise CalendarServiceNotInjectedError(
                "calendar_event_service is not defined, please configure your DI container correctly"
            )

        members = validated_data.pop("members", [])
        try:
            return self.calendar_event_service.create_event(
                get_calendar_context(self),
                CalendarEventInputData(
                    title=validated_data["title"],
                    start_time=validated_data["start_time"],
                    end_time=validated_data["end_time"],
                    description=validated_data.get("description", ""),
                    location=validated_data.get("location", ""),
                    is_all_day=validated_data.get("is_all_day", False),
                    recurrence_rule=validated_data.get("recurrence_rule") or None,
                    recurrence_end_date=validated_data.get("recurrence_end_date"),
                    reminder_minutes_before=validated_data.get("reminder_minutes_before"),
                    color=validated_data.get("color", ""),
                    members=[
                        EventMemberInputData(
                            user_id=member["user"].id,
                            participation_type=member["participation_type"],
                        )
                        for member in members
                    ],
                ),
            )
        except EVENT_INPUT_ERRORS as e:
            raise serializers.ValidationError({"non_field_errors": [str(e)]}) from e

    def update(self, instance: CalendarEvent, validated_data: dict) -> CalendarEvent:
        if not self.calendar_event_service:
            raise CalendarServiceNotInjectedError(
                "calendar_event_service is not defined, please configure your DI container correctly"
            )

        changes = EventChanges(
            title=validated_data.get("title"),
            description=validated_data.get("description"),
            location=validated_data.get("location"),
            start_time=validated_data.get("start_time"),
            end_time=validated_data.get("end_time"),
            is_all_day=validated_data.get("is_all_day"),
            recurrence_end_date=validated_data.get("recurrence_end_date"),
            color=validated_data.get("color"),
        )
        if "recurrence_rule" in validated_data:
            changes.recurrence_rule = validated_data["recurrence_rule"] or ""
        if "reminder_minutes_before" in validated_data:
            changes.reminder_minutes_before = validated_data["reminder_minutes_before"] or 0

        try:
            return self.calendar_event_service.update_event(
                get_calendar_context(self), instance.id, changes
            )
        except EVENT_INPUT_ERRORS as e:
            raise serializers.ValidationError({"non_field_errors": [str(e)]}) from e


class CalendarEventExceptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CalendarEventException
        fields = (
            "id",
            "event",
            "original_start",
            "is_deleted",
            "title",
            "description",
            "location",
            "start_time",
            "end_time",
            "is_all_day",
        )
        read_only_fields = fields


class OccurrenceSerializer(serializers.Serializer):
    event_id = serializers.IntegerField()
    original_start = serializers.DateTimeField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    title = serializers.CharField()
    description = serializers.CharField()
    location = serializers.CharField()
    is_all_day = serializers.BooleanField()
    color = serializers.CharField()
    reminder_minutes_before = serializers.IntegerField(allow_null=True)
    is_recurring = serializers.BooleanField()
    is_exception = serializers.BooleanField()


class OccurrenceQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    user = serializers.IntegerField(required=False, help_text="Only events this user is a member of")
    event = serializers.IntegerField(required=False, help_text="Only occurrences of this series")

    def validate(self, attrs):
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError("End must be after start.")
        return attrs


class OccurrenceDeleteSerializer(serializers.Serializer):
    occurrence_start = serializers.DateTimeField(
        help_text="Original start of the targeted occurrence"
    )
    scope = serializers.ChoiceField(choices=EditScope.choices)


class OccurrenceEditSerializer(OccurrenceDeleteSerializer):
    title = serializers.CharField(required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    location = serializers.CharField(required=False, allow_blank=True)
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    is_all_day = serializers.BooleanField(required=False)
    recurrence_rule = serializers.CharField(
        required=False, allow_blank=True, help_text="Empty string turns the series into a single event"
    )
    recurrence_end_date = serializers.DateTimeField(required=False)
    reminder_minutes_before = serializers.IntegerField(
        required=False, min_value=0, help_text="0 removes the reminder"
    )
    color = serializers.CharField(required=False, allow_blank=True)

    def to_changes(self) -> EventChanges:
        data = self.validated_data
        return EventChanges(
            title=data.get("title"),
            description=data.get("description"),
            location=data.get("location"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            is_all_day=data.get("is_all_day"),
            recurrence_rule=data.get("recurrence_rule"),
            recurrence_end_date=data.get("recurrence_end_date"),
            reminder_minutes_before=data.get("reminder_minutes_before"),
            color=data.get("color"),
        )


class EditResultSerializer(serializers.Serializer):
    event = CalendarEventSerializer(allow_null=True)
    exception = CalendarEventExceptionSerializer(allow_null=True)
    continuation = CalendarEventSerializer(allow_null=True)
    deleted = serializers.BooleanField()


class EventMemberInputSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    participation_type = serializers.ChoiceField(
        choices=ParticipationType.choices, default=ParticipationType.INVOLVED
    )


class RemoveEventMemberSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()


class FreeBusyRequestSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), min_length=1)
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()

    def validate(self, attrs):
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError("End must be after start.")
        return attrs


class FindSlotsRequestSerializer(FreeBusyRequestSerializer):
    duration_minutes = serializers.IntegerField(
        min_value=int(MIN_SLOT_DURATION.total_seconds() // 60),
        max_value=int(MAX_SLOT_DURATION.total_seconds() // 60),
    )
    max_results = serializers.IntegerField(
        required=False, min_value=1, max_value=MAX_SLOT_RESULTS
    )


class BusyIntervalSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    source = serializers.CharField()


class FreeBusySerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    busy = BusyIntervalSerializer(many=True)


class AvailableSlotSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    duration_minutes = serializers.SerializerMethodField()

    def get_duration_minutes(self, obj: AvailableSlot) -> int:
        return int(obj.duration.total_seconds() // 60)


class CalendarFeedTokenSerializer(serializers.ModelSerializer):
    feed_url = serializers.SerializerMethodField()

    class Meta:
        model = CalendarFeedToken
        fields = (
            "id",
            "label",
            "token",
            "feed_url",
            "is_revoked",
            "last_accessed_at",
            "created",
        )
        read_only_fields = ("id", "token", "feed_url", "is_revoked", "last_accessed_at", "created")

    @inject
    def __init__(
        self,
        *args,
        calendar_feed_service: Annotated[
            "CalendarFeedService | None", Provide["calendar_feed_service"]
        ] = None,
        **kwargs,
    ):
        self.calendar_feed_service = calendar_feed_service
        super().__init__(*args, **kwargs)

    def get_feed_url(self, obj: CalendarFeedToken) -> str:
        path = reverse("calendar_feed:feed", kwargs={"token": obj.token})
        request = self.context.get("request")
        return request.build_absolute_uri(path) if request else path

    def create(self, validated_data):
        if not self.calendar_feed_service:
            raise CalendarServiceNotInjectedError(
                "calendar_feed_service is not defined, please configure your DI container correctly"
            )
        return self.calendar_feed_service.create_token(
            get_calendar_context(self), label=validated_data.get("label", "")
        )


class ExternalCalendarSubscriptionSerializer(serializers.ModelSerializer):
    ics_url = serializers.CharField(max_length=2000, help_text="http(s) or webcal URL of the feed")
    sync_interval_minutes = serializers.IntegerField(required=False)

    class Meta:
        model = ExternalCalendarSubscription
        fields = (
            "id",
            "name",
            "ics_url",
            "color",
            "sync_interval_minutes",
            "is_active",
            "last_synced_at",
            "last_sync_status",
            "created",
            "modified",
        )
        read_only_fields = ("id", "last_synced_at", "last_sync_status", "created", "modified")

    @inject
    def __init__(
        self,
        *args,
        external_calendar_service: Annotated[
            "ExternalCalendarService | None", Provide["external_calendar_service"]
        ] = None,
        **kwargs,
    ):
        self.external_calendar_service = external_calendar_service
        super().__init__(*args, **kwargs)

    def _get_input_data(
        self, validated_data: dict, instance: ExternalCalendarSubscription | None = None
    ) -> ExternalCalendarSubscriptionInputData:
        def current(field_name, default):
            return getattr(instance, field_name) if instance is not None else default

        return ExternalCalendarSubscriptionInputData(
            name=validated_data.get("name", current("name", "")),
            ics_url=validated_data.get("ics_url", current("ics_url", "")),
            color=validated_data.get("color", current("color", "")),
            sync_interval_minutes=validated_data.get("sync_interval_minutes"),
            is_active=validated_data.get("is_active", current("is_active", True)),
        )

    def create(self, validated_data):
        if not self.external_calendar_service:
            raise CalendarServiceNotInjectedError(
                "external_calendar_service is not defined, please configure your DI container correctly"
            )
        try:
            return self.external_calendar_service.create_subscription(
                get_calendar_context(self), self._get_input_data(validated_data)
            )
        except ExternalCalendarError as e:
            raise serializers.ValidationError({"non_field_errors": [str(e)]}) from e

    def update(self, instance, validated_data):
        if not self.external_calendar_service:
            raise CalendarServiceNotInjectedError(
                "external_calendar_service is not defined, please configure your DI container correctly"
            )
        try:
            return self.external_calendar_service.update_subscription(
                get_calendar_context(self),
                instance.id,
                self._get_input_data(validated_data, instance),
            )
        except ExternalCalendarError as e:
            raise serializers.ValidationError({"non_field_errors": [str(e)]}) from e


class IcsImportSerializer(serializers.Serializer):
    ics_content = serializers.CharField(help_text="Raw ICS document to import")
