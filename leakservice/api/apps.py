"""Django application configuration for the breach API."""

import logging
import os

from django.apps import AppConfig

from leakguard.cache import MemoryCacheStore
from leakguard.config import load_config
from leakguard.log import configure_logging


class ApiConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "leakservice.api"

    # Store shared by every request when no Redis URL is configured
    cache_store = None

    def ready(self):
        level = logging.DEBUG if os.environ.get("LEAKGUARD_DEBUG") else logging.INFO
        configure_logging(level)
        if not load_config().get("redis_url"):
            self.cache_store = MemoryCacheStore()
