"""
Test settings – in-memory SQLite, no environment needed.
"""
from .base import *  # noqa: F401, F403

DEBUG = False

SECRET_KEY = "test-only-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

OMNIBUS_STRICT_IMPORT = True
OMNIBUS_CHECK_PATHS = False
OMNIBUS_MAX_SOURCE_BYTES = 262144
OMNIBUS_DEFAULT_ENVIRONMENT = "production"

LOGGING["root"]["level"] = "WARNING"  # noqa: F405
