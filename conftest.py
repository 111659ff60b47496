import pytest
from model_bakery import baker
from rest_framework.test import APIClient


@pytest.fixture
def user_password():
    from users.factories import DEFAULT_TEST_USER_PASSWORD

    return DEFAULT_TEST_USER_PASSWORD


@pytest.fixture
def user(user_password):
    from users.factories import UserFactory

    return UserFactory().create_user(first_name="Alex", last_name="Doe")


@pytest.fixture
def household():
    from households.models import Household

    return baker.make(Household, name="Doe")


@pytest.fixture
def membership(user, household):
    from households.models import HouseholdMembership

    return baker.make(HouseholdMembership, user=user, household=household)


@pytest.fixture
def household_member(household):
    """Another user of the same household."""
    from households.models import HouseholdMembership
    from users.factories import UserFactory

    member = UserFactory().create_user(first_name="Sam")
    baker.make(HouseholdMembership, user=member, household=household)
    return member


@pytest.fixture
def outsider():
    """A user that belongs to another household."""
    from households.models import Household, HouseholdMembership
    from users.factories import UserFactory

    other = UserFactory().create_user()
    baker.make(HouseholdMembership, user=other, household=baker.make(Household, name="Other"))
    return other


@pytest.fixture
def calendar_context(membership):
    from household_calendar.services.dataclasses import CalendarContext

    return CalendarContext(household_id=membership.household_id, user_id=membership.user_id)


@pytest.fixture
def auth_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def anonymous_client():
    client = APIClient()
    return client


@pytest.fixture
def di_container():
    """Fixture to create a DI container."""
    from di_core.containers import container

    return container
