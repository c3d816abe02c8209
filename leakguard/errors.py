"""Exception hierarchy for the breach aggregation core."""

from typing import Optional


class LeakGuardError(Exception):
    """Base class for all errors raised by the core."""


class InvalidInput(LeakGuardError, ValueError):
    """Malformed input rejected before any cache or network access."""


class CheckerError(LeakGuardError):
    """A single source checker failed to produce a result."""

    def __init__(self, checker: str, message: str):
        super().__init__(f"{checker}: {message}")
        self.checker = checker


class CheckerTimeout(CheckerError):
    """A source checker did not settle within its time budget."""

    def __init__(self, checker: str, timeout: float):
        super().__init__(checker, f"timed out after {timeout:g}s")
        self.timeout = timeout


class FetchError(LeakGuardError):
    """Base class for failures of the challenge-resilient fetch layer."""

    def __init__(self, url: str, message: Optional[str] = None):
        super().__init__(message or f"fetch failed for {url}")
        self.url = url


class ChallengeBlocked(FetchError):
    """The source kept answering with a block status on every attempt."""


class RateLimited(FetchError):
    """The source signalled a rate limit; never retried."""


class ClearanceUnobtainable(FetchError):
    """No clearance cookie (or captcha token) could be obtained."""


class PayloadUnavailable(FetchError):
    """Clearance was obtained but the page carried no parseable JSON."""


class CacheUnavailable(LeakGuardError):
    """The cache backend could not be reached."""


class NavigationFailed(FetchError):
    """A single navigation attempt failed before any status was received."""


class NotificationError(LeakGuardError):
    """A breach alert could not be delivered."""
