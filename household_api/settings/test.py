from .base import *


SECRET_KEY = "test"  # nosec

DATABASES = {
    "default": db_url("sqlite://:memory:"),
}

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Speed up password hashing
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

LOGGING["loggers"][""]["level"] = "WARNING"  # type: ignore[index]
LOGGING["loggers"]["household_calendar"]["level"] = "WARNING"  # type: ignore[index]
