"""ASGI entrypoint for serving the breach API with an async server."""

import os
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "leakservice.settings")

application = get_asgi_application()
