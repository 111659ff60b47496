from django.db.models import Manager

from common.exceptions import HouseholdRequiredError
from households.querysets import BaseHouseholdModelQuerySet


class BaseHouseholdModelManager(Manager):
    """
    Base manager for household models. Concrete managers override
    `get_queryset` to return a subclass of `BaseHouseholdModelQuerySet`.
    """

    def get_queryset(self):
        return BaseHouseholdModelQuerySet(self.model, using=self._db)

    def filter_by_household(self, household_id: int):
        """
        Filters the queryset by the specified household ID.
        :param household_id: ID of the household to filter by.
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_by_household(household_id)

    def exclude_by_household(self, household_id: int):
        return self.get_queryset().exclude_by_household(household_id)

    def create(self, **kwargs):
        if "household_id" not in kwargs and "household" not in kwargs:
            raise HouseholdRequiredError()
        return super().create(**kwargs)
