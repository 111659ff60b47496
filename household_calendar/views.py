import datetime
from typing import Annotated

from dependency_injector.wiring import Provide, inject
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from common.utils.view_utils import HouseholdModelViewSet, HouseholdScopedViewSetMixin
from household_calendar.exceptions import (
    AvailabilityQueryError,
    CalendarEventNotFoundError,
    CalendarEventValidationError,
    ExternalCalendarParseError,
    FeedTokenNotFoundError,
    HouseholdMembershipRequiredError,
    OccurrenceNotFoundError,
    RecurrenceError,
)
from household_calendar.filtersets import CalendarEventFilterSet
from household_calendar.models import (
    CalendarEvent,
    CalendarFeedToken,
    ExternalCalendarSubscription,
)
from household_calendar.serializers import (
    AvailableSlotSerializer,
    CalendarEventMemberSerializer,
    CalendarEventSerializer,
    CalendarFeedTokenSerializer,
    EditResultSerializer,
    EventMemberInputSerializer,
    ExternalCalendarSubscriptionSerializer,
    FindSlotsRequestSerializer,
    FreeBusyRequestSerializer,
    FreeBusySerializer,
    IcsImportSerializer,
    OccurrenceDeleteSerializer,
    OccurrenceEditSerializer,
    OccurrenceQuerySerializer,
    OccurrenceSerializer,
    RemoveEventMemberSerializer,
)
from household_calendar.services.availability_service import AvailabilityService
from household_calendar.services.calendar_event_service import CalendarEventService
from household_calendar.services.calendar_feed_service import CalendarFeedService
from household_calendar.services.dataclasses import CalendarContext, OccurrenceFilter
from household_calendar.services.external_calendar_service import ExternalCalendarService


BAD_REQUEST_ERRORS = (
    CalendarEventValidationError,
    RecurrenceError,
    HouseholdMembershipRequiredError,
    AvailabilityQueryError,
)
NOT_FOUND_ERRORS = (
    CalendarEventNotFoundError,
    OccurrenceNotFoundError,
)


class CalendarContextMixin(HouseholdScopedViewSetMixin):
    def get_calendar_context(self) -> CalendarContext:
        return CalendarContext(household_id=self.get_household_id(), user_id=self.request.user.id)

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["calendar_context"] = self.get_calendar_context()
        return context


class CalendarEventViewSet(CalendarContextMixin, HouseholdModelViewSet):
    """
    ViewSet for managing the household's calendar series. Writes on the
    series itself apply to all of its occurrences.
    """

    queryset = CalendarEvent.objects.all().prefetch_related("members")
    serializer_class = CalendarEventSerializer
    filterset_class = CalendarEventFilterSet

    @extend_schema(
        summary="Delete calendar event",
        description="Delete a series with all of its occurrences, exceptions and members.",
        responses={204: None},
    )
    @inject
    def destroy(
        self,
        request,
        *args,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
        **kwargs,
    ):
        instance = self.get_object()
        calendar_event_service.delete_event(self.get_calendar_context(), instance.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="List occurrences",
        description=(
            "List the effective occurrences of the household's events within a range, "
            "with per-occurrence edits and deletions applied."
        ),
        parameters=[
            OpenApiParameter(
                name="start",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Start datetime in ISO format (YYYY-MM-DDTHH:MM:SS)",
                required=True,
            ),
            OpenApiParameter(
                name="end",
                type=str,
                location=OpenApiParameter.QUERY,
                description="End datetime in ISO format (YYYY-MM-DDTHH:MM:SS)",
                required=True,
            ),
            OpenApiParameter(
                name="user",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Only events this user is a member of",
                required=False,
            ),
            OpenApiParameter(
                name="event",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Only occurrences of this event",
                required=False,
            ),
        ],
        responses={200: OccurrenceSerializer(many=True)},
    )
    @action(
        methods=["GET"],
        detail=False,
        url_path="occurrences",
        url_name="occurrences",
    )
    @inject
    def occurrences(
        self,
        request,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        query_serializer = OccurrenceQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)
        query = query_serializer.validated_data

        try:
            occurrences = calendar_event_service.get_occurrences(
                self.get_calendar_context(),
                OccurrenceFilter(
                    start=query["start"],
                    end=query["end"],
                    user_id=query.get("user"),
                    event_ids=[query["event"]] if "event" in query else None,
                ),
            )
        except BAD_REQUEST_ERRORS as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(OccurrenceSerializer(occurrences, many=True).data)

    @extend_schema(
        summary="Edit occurrence",
        description=(
            "Edit one occurrence, that occurrence and the following ones, or every "
            "occurrence of the series."
        ),
        request=OccurrenceEditSerializer,
        responses={200: EditResultSerializer},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="edit-occurrence",
        url_name="edit-occurrence",
    )
    @inject
    def edit_occurrence(
        self,
        request,
        pk,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        event = self.get_object()
        serializer = OccurrenceEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = calendar_event_service.apply_edit(
                self.get_calendar_context(),
                event.id,
                serializer.validated_data["occurrence_start"],
                serializer.validated_data["scope"],
                serializer.to_changes(),
            )
        except NOT_FOUND_ERRORS as e:
            raise NotFound(str(e)) from e
        except BAD_REQUEST_ERRORS as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(EditResultSerializer(result, context=self.get_serializer_context()).data)

    @extend_schema(
        summary="Delete occurrence",
        description=(
            "Delete one occurrence, that occurrence and the following ones, or the "
            "whole series."
        ),
        request=OccurrenceDeleteSerializer,
        responses={200: EditResultSerializer},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="delete-occurrence",
        url_name="delete-occurrence",
    )
    @inject
    def delete_occurrence(
        self,
        request,
        pk,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        event = self.get_object()
        serializer = OccurrenceDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = calendar_event_service.apply_delete(
                self.get_calendar_context(),
                event.id,
                serializer.validated_data["occurrence_start"],
                serializer.validated_data["scope"],
            )
        except NOT_FOUND_ERRORS as e:
            raise NotFound(str(e)) from e
        except BAD_REQUEST_ERRORS as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(EditResultSerializer(result, context=self.get_serializer_context()).data)

    @extend_schema(
        summary="Add or update event member",
        request=EventMemberInputSerializer,
        responses={200: CalendarEventMemberSerializer},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="members",
        url_name="members",
    )
    @inject
    def members(
        self,
        request,
        pk,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        event = self.get_object()
        serializer = EventMemberInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            member = calendar_event_service.add_member(
                self.get_calendar_context(),
                event.id,
                serializer.validated_data["user_id"],
                serializer.validated_data["participation_type"],
            )
        except BAD_REQUEST_ERRORS as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(CalendarEventMemberSerializer(member).data)

    @extend_schema(
        summary="Remove event member",
        request=RemoveEventMemberSerializer,
        responses={204: None},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="remove-member",
        url_name="remove-member",
    )
    @inject
    def remove_member(
        self,
        request,
        pk,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        event = self.get_object()
        serializer = RemoveEventMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        removed = calendar_event_service.remove_member(
            self.get_calendar_context(), event.id, serializer.validated_data["user_id"]
        )
        if not removed:
            raise NotFound("User is not a member of this event.")
        return Response(status=status.HTTP_204_NO_CONTENT)


class AvailabilityViewSet(CalendarContextMixin, GenericViewSet):
    """
    Free/busy timelines and common free slots of household members.
    """

    @extend_schema(
        summary="Get free/busy",
        description="Busy intervals of each requested household member within a range.",
        request=FreeBusyRequestSerializer,
        responses={200: FreeBusySerializer(many=True)},
    )
    @action(
        methods=["POST"],
        detail=False,
        url_path="free-busy",
        url_name="free-busy",
    )
    @inject
    def free_busy(
        self,
        request,
        availability_service: Annotated[AvailabilityService, Provide["availability_service"]],
    ):
        serializer = FreeBusyRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            free_busy = availability_service.get_free_busy(
                self.get_calendar_context(),
                serializer.validated_data["user_ids"],
                serializer.validated_data["start"],
                serializer.validated_data["end"],
            )
        except BAD_REQUEST_ERRORS as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(FreeBusySerializer(free_busy, many=True).data)

    @extend_schema(
        summary="Find common free slots",
        description=(
            "Every window within the range where all requested household members are "
            "free for at least the requested duration."
        ),
        request=FindSlotsRequestSerializer,
        responses={200: AvailableSlotSerializer(many=True)},
    )
    @action(
        methods=["POST"],
        detail=False,
        url_path="find-slots",
        url_name="find-slots",
    )
    @inject
    def find_slots(
        self,
        request,
        availability_service: Annotated[AvailabilityService, Provide["availability_service"]],
    ):
        serializer = FindSlotsRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            slots = availability_service.find_slots(
                self.get_calendar_context(),
                serializer.validated_data["user_ids"],
                datetime.timedelta(minutes=serializer.validated_data["duration_minutes"]),
                serializer.validated_data["start"],
                serializer.validated_data["end"],
                max_results=serializer.validated_data.get("max_results"),
            )
        except BAD_REQUEST_ERRORS as e:
            raise ValidationError({"non_field_errors": [str(e)]}) from e

        return Response(AvailableSlotSerializer(slots, many=True).data)


class CalendarFeedTokenViewSet(CalendarContextMixin, HouseholdModelViewSet):
    """
    Secret tokens granting calendar clients read access to the user's feed.
    """

    http_method_names = ["get", "post", "delete", "head", "options"]
    queryset = CalendarFeedToken.objects.all()
    serializer_class = CalendarFeedTokenSerializer

    def get_queryset(self):
        return super().get_queryset().filter(user=self.request.user)

    @inject
    def destroy(
        self,
        request,
        *args,
        calendar_feed_service: Annotated[CalendarFeedService, Provide["calendar_feed_service"]],
        **kwargs,
    ):
        instance = self.get_object()
        try:
            calendar_feed_service.delete_token(self.get_calendar_context(), instance.id)
        except FeedTokenNotFoundError as e:
            raise NotFound(str(e)) from e
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Revoke feed token",
        description="Revoked tokens make the feed URL return not found.",
        request=None,
        responses={200: CalendarFeedTokenSerializer},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="revoke",
        url_name="revoke",
    )
    @inject
    def revoke(
        self,
        request,
        pk,
        calendar_feed_service: Annotated[CalendarFeedService, Provide["calendar_feed_service"]],
    ):
        instance = self.get_object()
        try:
            token = calendar_feed_service.revoke_token(self.get_calendar_context(), instance.id)
        except FeedTokenNotFoundError as e:
            raise NotFound(str(e)) from e
        return Response(self.get_read_serializer(token).data)


class ExternalCalendarSubscriptionViewSet(CalendarContextMixin, HouseholdModelViewSet):
    """
    The user's subscriptions to external ICS calendars.
    """

    queryset = ExternalCalendarSubscription.objects.all()
    serializer_class = ExternalCalendarSubscriptionSerializer

    def get_queryset(self):
        return super().get_queryset().filter(user=self.request.user)

    @inject
    def destroy(
        self,
        request,
        *args,
        external_calendar_service: Annotated[
            ExternalCalendarService, Provide["external_calendar_service"]
        ],
        **kwargs,
    ):
        instance = self.get_object()
        external_calendar_service.delete_subscription(self.get_calendar_context(), instance.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Import ICS content",
        description=(
            "Replace the imported events of the subscription with the events of an ICS "
            "document."
        ),
        request=IcsImportSerializer,
        responses={200: ExternalCalendarSubscriptionSerializer},
    )
    @action(
        methods=["POST"],
        detail=True,
        url_path="import-ics",
        url_name="import-ics",
    )
    @inject
    def import_ics(
        self,
        request,
        pk,
        external_calendar_service: Annotated[
            ExternalCalendarService, Provide["external_calendar_service"]
        ],
    ):
        subscription = self.get_object()
        serializer = IcsImportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            subscription = external_calendar_service.import_ics_content(
                subscription, serializer.validated_data["ics_content"]
            )
        except ExternalCalendarParseError as e:
            # returned instead of raised so the recorded sync status is kept
            return Response(
                {"non_field_errors": [str(e)]}, status=status.HTTP_400_BAD_REQUEST
            )

        return Response(self.get_read_serializer(subscription).data)
