from .base import *


DEBUG = True

SECRET_KEY = config("SECRET_KEY", default="local-secret-key")  # noqa: S105

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

LOGGING["loggers"][""]["level"] = "DEBUG"  # type: ignore[index]
