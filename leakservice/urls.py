"""Project level URL routes."""

from django.urls import path, include

urlpatterns = [
    path("api/", include("leakservice.api.urls")),
]
