from django.http import Http404

from rest_framework import status
from rest_framework.response import Response
from rest_framework.viewsets import ModelViewSet


class ReadWriteSerializerMixin:
    """
    Uses `write_serializer_class` to validate input and `read_serializer_class`
    (falling back to `serializer_class`) to render the refetched instance.
    """

    read_serializer_class = None
    write_serializer_class = None

    def get_read_serializer_class(self):
        if getattr(self, "read_serializer_class", None) is None:
            return self.get_serializer_class()

        return self.read_serializer_class

    def get_write_serializer_class(self):
        if getattr(self, "write_serializer_class", None) is None:
            return self.get_serializer_class()

        return self.write_serializer_class

    def get_read_serializer(self, *args, **kwargs):
        serializer_class = self.get_read_serializer_class()
        kwargs["context"] = self.get_serializer_context()
        return serializer_class(*args, **kwargs)

    def get_write_serializer(self, *args, **kwargs):
        serializer_class = self.get_write_serializer_class()
        kwargs["context"] = self.get_serializer_context()
        return serializer_class(*args, **kwargs)

    def create(self, request, *args, **kwargs):
        serializer = self.get_write_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)

        # re-fetches the instance so we get the related rows created with it
        instance = self.get_queryset().get(pk=serializer.instance.pk)
        return Response(self.get_read_serializer(instance).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_write_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)

        instance = self.get_queryset().get(pk=serializer.instance.pk)
        return Response(self.get_read_serializer(instance).data)


class HouseholdScopedViewSetMixin:
    """
    Resolves the household of the authenticated user. Viewsets using it only
    ever see rows of that household.
    """

    def get_household_membership(self):
        from households.models import HouseholdMembership

        try:
            return self.request.user.household_membership
        except HouseholdMembership.DoesNotExist as e:
            raise Http404("Household not found for the user.") from e

    def get_household_id(self) -> int:
        return self.get_household_membership().household_id


class HouseholdModelViewSet(HouseholdScopedViewSetMixin, ReadWriteSerializerMixin, ModelViewSet):
    """
    A viewset that provides default `create()`, `retrieve()`, `update()`,
    `partial_update()`, `destroy()` and `list()` actions for household models.
    It refetches the instance after write operations to ensure the latest data is returned.
    """

    def get_queryset(self):
        return super().get_queryset().filter_by_household(self.get_household_id())
