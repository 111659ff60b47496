from django.conf import settings
from django.db import models

from common.models import BaseModel
from households.managers import BaseHouseholdModelManager


class Household(BaseModel):
    """
    The tenant. Every calendar row belongs to exactly one household.
    """

    name = models.CharField(max_length=255)

    def __str__(self):
        return self.name


class HouseholdMembership(BaseModel):
    """
    Links a user to the household they belong to.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="household_membership",
    )
    household = models.ForeignKey(
        Household,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    def __str__(self):
        return f"{self.user} in {self.household}"


class HouseholdModel(BaseModel):
    """
    Abstract base for models owned by a household. Queries should be scoped with
    `filter_by_household`.
    """

    household = models.ForeignKey(
        Household,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="The household this row belongs to.",
    )

    objects: BaseHouseholdModelManager = BaseHouseholdModelManager()

    class Meta:
        abstract = True
