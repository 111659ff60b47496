from collections.abc import Callable

from cuid2 import cuid_wrapper
from model_bakery import baker

from users.models import User


cuid_generator: Callable[[], str] = cuid_wrapper()


DEFAULT_TEST_USER_PASSWORD = "123456"  # noqa: S105


class UserFactory:
    def create_user(self, **kwargs) -> User:
        try:
            return User.objects.get(email=kwargs.get("email", ""))
        except User.DoesNotExist:
            pass

        password = kwargs.pop("password", DEFAULT_TEST_USER_PASSWORD)
        kwargs.setdefault("email", f"user{cuid_generator()}@example.com")

        user = baker.prepare(User, **kwargs)
        user.set_password(password)
        user.save()
        return user
