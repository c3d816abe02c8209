"""API views for the breach aggregation service.

Every endpoint follows the same stages:
1) Validate the JSON body
2) Load configuration and open an aggregator for the request
3) Run the asynchronous lookup
4) Return the result as JSON

Malformed input is answered with 400, anything unexpected with 500.
Subscribing is refused with 503 when no Redis URL is configured.
"""

import logging

from asgiref.sync import async_to_sync
from django.apps import apps
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from leakguard.aggregator import validate_email_address
from leakguard.config import load_config
from leakguard.errors import InvalidInput
from leakguard.runtime import open_aggregator

logger = logging.getLogger(__name__)


def _service_config() -> dict:
    cfg = load_config()
    cfg["browser_pool_size"] = settings.LEAKGUARD_POOL_SIZE
    return cfg


def run_with_aggregator(operation):
    """Run ``operation(aggregator)`` on a freshly opened aggregator.

    Without Redis every request shares the app's in-process store.
    """
    store = apps.get_app_config("api").cache_store

    async def runner():
        async with open_aggregator(_service_config(), store) as aggregator:
            return await operation(aggregator)

    return async_to_sync(runner)()


def _bad_request(message: str) -> Response:
    return Response({"error": message}, status=status.HTTP_400_BAD_REQUEST)


def _server_error(exc: Exception) -> Response:
    logger.exception("Request failed: %s", exc)
    return Response({"error": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class EmailView(APIView):
    """List breaches for an email address."""

    def post(self, request):
        """Handle POST with ``{"email": ...}``.

        Returns:
            ``Response`` with the email, its de-duplicated breaches, the
            result status and which sources answered.
        """
        email = request.data.get("email")
        if not email:
            return _bad_request("email parameter required")
        try:
            report = run_with_aggregator(lambda agg: agg.check_email_report(email))
        except InvalidInput as exc:
            return _bad_request(str(exc))
        except Exception as exc:
            return _server_error(exc)
        return Response(report.to_dict())


class PasswordView(APIView):
    """Check a password; only a digest prefix ever leaves the process."""

    def post(self, request):
        password = request.data.get("password")
        if not isinstance(password, str) or not password:
            return _bad_request("password parameter required")
        try:
            result = run_with_aggregator(lambda agg: agg.check_password(password))
        except Exception as exc:
            return _server_error(exc)
        return Response(result.to_dict())


class AnalyticsView(APIView):
    def post(self, request):
        email = request.data.get("email")
        if not email:
            return _bad_request("email parameter required")
        try:
            analytics = run_with_aggregator(lambda agg: agg.get_analytics(email))
        except InvalidInput as exc:
            return _bad_request(str(exc))
        except Exception as exc:
            return _server_error(exc)
        return Response(analytics.to_dict())


class MonitorView(APIView):
    """Subscribe (POST) or unsubscribe (DELETE) an email from breach alerts."""

    def post(self, request):
        email = request.data.get("email")
        chat_id = request.data.get("chat_id")
        if not email or chat_id is None:
            return _bad_request("email and chat_id parameters required")
        try:
            email = validate_email_address(email)
            chat_id = int(chat_id)
        except (InvalidInput, TypeError, ValueError) as exc:
            return _bad_request(str(exc))
        cfg = _service_config()
        if not cfg.get("redis_url"):
            # the watch process reads subscriptions from Redis
            return Response({"error": "monitoring requires REDIS_URL"},
                            status=status.HTTP_503_SERVICE_UNAVAILABLE)
        try:
            run_with_aggregator(lambda agg: agg.monitor_email(email, chat_id))
        except Exception as exc:
            return _server_error(exc)
        return Response({"email": email, "chat_id": chat_id, "monitoring": True},
                        status=status.HTTP_201_CREATED)

    def delete(self, request):
        email = request.data.get("email")
        if not email:
            return _bad_request("email parameter required")
        try:
            removed = run_with_aggregator(lambda agg: agg.stop_monitoring(email))
        except InvalidInput as exc:
            return _bad_request(str(exc))
        except Exception as exc:
            return _server_error(exc)
        return Response({"email": email, "removed": removed})


class StatsView(APIView):
    def get(self, request):
        try:
            stats = run_with_aggregator(lambda agg: agg.get_stats())
        except Exception as exc:
            return _server_error(exc)
        return Response(stats)
