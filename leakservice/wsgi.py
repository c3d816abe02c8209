"""WSGI entrypoint for the breach API."""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "leakservice.settings")

application = get_wsgi_application()
