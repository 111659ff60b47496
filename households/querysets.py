from django.db.models.query import QuerySet


class BaseHouseholdModelQuerySet(QuerySet):
    """
    Base QuerySet for models that belong to a household.
    """

    def filter_by_household(self, household_id: int):
        """
        Filters the queryset by the specified household ID.
        :param household_id: ID of the household to filter by.
        :return: Filtered QuerySet.
        """
        return self.filter(household_id=household_id)

    def exclude_by_household(self, household_id: int):
        """
        Excludes records belonging to the specified household ID.
        :param household_id: ID of the household to exclude.
        :return: Filtered QuerySet.
        """
        return self.exclude(household_id=household_id)
