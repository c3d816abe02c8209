"""Minimal Django settings for running the breach API."""

from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent

# WARNING: Keep the secret key secret in production.
SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "replace-me")

DEBUG = os.environ.get("DJANGO_DEBUG", "").lower() in {"1", "true", "yes"}

ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

# The API is stateless; all persistence goes through the breach cache.
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "leakservice.api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "leakservice.urls"

WSGI_APPLICATION = "leakservice.wsgi.application"
ASGI_APPLICATION = "leakservice.asgi.application"

DATABASES = {}

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
}

# Browser slots started per request; each request performs one fetch at most
LEAKGUARD_POOL_SIZE = int(os.environ.get("LEAKGUARD_POOL_SIZE", "1"))

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
