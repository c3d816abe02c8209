"""URL configuration for the breach API."""

from django.urls import path
from .views import AnalyticsView, EmailView, MonitorView, PasswordView, StatsView

urlpatterns = [
    path("email/", EmailView.as_view(), name="email"),
    path("password/", PasswordView.as_view(), name="password"),
    path("analytics/", AnalyticsView.as_view(), name="analytics"),
    path("monitor/", MonitorView.as_view(), name="monitor"),
    path("stats/", StatsView.as_view(), name="stats"),
]
