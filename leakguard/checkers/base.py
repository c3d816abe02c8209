from abc import ABC, abstractmethod
from typing import Any, List, Optional

from leakguard.cache import JsonCache
from leakguard.models import Analytics, Breach, PasswordCheckResult

# Cache lifetimes for checker-owned raw namespaces
EMAIL_TTL = 24 * 60 * 60
PASSWORD_TTL = 24 * 60 * 60
ANALYTICS_TTL = 7 * 24 * 60 * 60


class BreachChecker(ABC):
    """A breach-intelligence source.

    ``check_email_breaches`` and ``check_password`` are required. Analytics
    is optional: callers must ask :meth:`supports_analytics` first.

    A "not found" answer is an empty result and may be cached by the
    checker under its own namespace. Failures raise and are never cached.
    The password is only ever sent as a digest prefix.
    """

    name = "checker"

    def __init__(self, cache: Optional[JsonCache] = None):
        self.cache = cache

    @abstractmethod
    async def check_email_breaches(self, email: str) -> List[Breach]:
        pass

    @abstractmethod
    async def check_password(self, password: str) -> PasswordCheckResult:
        pass

    def supports_analytics(self) -> bool:
        return False

    async def get_analytics(self, email: str) -> Analytics:
        raise NotImplementedError(f"{self.name} does not provide analytics")

    async def close(self) -> None:
        pass

    async def _cached(self, key: str) -> Any:
        if self.cache is None:
            return None
        return await self.cache.get_json(key)

    async def _store(self, key: str, value: Any, ttl: int) -> None:
        if self.cache is not None:
            await self.cache.set_json(key, value, ttl)
