"""Email and password breach aggregation with challenge-resilient fetching."""

from leakguard.aggregator import BreachAggregator, remove_duplicates, validate_email_address
from leakguard.errors import CheckerError, FetchError, InvalidInput, LeakGuardError
from leakguard.models import Analytics, Breach, EmailReport, PasswordCheckResult
from leakguard.runtime import open_aggregator

__version__ = "0.1.0"

__all__ = [
    "Analytics",
    "Breach",
    "BreachAggregator",
    "CheckerError",
    "EmailReport",
    "FetchError",
    "InvalidInput",
    "LeakGuardError",
    "PasswordCheckResult",
    "open_aggregator",
    "remove_duplicates",
    "validate_email_address",
]
