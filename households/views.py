from rest_framework import mixins
from rest_framework.permissions import IsAuthenticated
from rest_framework.viewsets import GenericViewSet

from households.models import Household
from households.serializers import HouseholdSerializer


class HouseholdViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, GenericViewSet):
    """
    Read-only access to the household of the authenticated user and its members.
    """

    queryset = Household.objects.all()
    serializer_class = HouseholdSerializer
    permission_classes = (IsAuthenticated,)

    def get_queryset(self):
        user = self.request.user
        if hasattr(user, "household_membership") and user.household_membership:
            return (
                super()
                .get_queryset()
                .filter(id=user.household_membership.household_id)
                .prefetch_related("memberships__user")
            )
        return Household.objects.none()
