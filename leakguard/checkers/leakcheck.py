"""LeakCheck public API checker (plain HTTP, no challenge)."""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from leakguard.cache import JsonCache
from leakguard.checkers.base import EMAIL_TTL, BreachChecker
from leakguard.errors import CheckerError
from leakguard.models import Breach, PasswordCheckResult

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "LeakGuard/1.0",
    "Accept": "application/json",
}


class LeakCheckChecker(BreachChecker):
    """Look up email breaches via the LeakCheck public API.

    ``success: false`` answers map to an empty list; 5xx answers, rate
    limits and transport errors raise :class:`CheckerError`.
    """

    name = "leakcheck"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        *,
        cache: Optional[JsonCache] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 20.0,
    ):
        super().__init__(cache)
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=HEADERS,
            )
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def check_email_breaches(self, email: str) -> List[Breach]:
        cache_key = f"leakcheck:{email}"
        cached = await self._cached(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return [Breach.from_dict(item) for item in cached]

        params = {"check": email}
        if self.api_key:
            params["key"] = self.api_key

        session = self._get_session()
        try:
            async with session.get(self.api_url, params=params, headers=HEADERS) as resp:
                if resp.status >= 500:
                    raise CheckerError(self.name, f"service unavailable (HTTP {resp.status})")
                if resp.status == 429:
                    raise CheckerError(self.name, "rate limit hit")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("LeakCheck lookup failed for %s: %s", email, exc)
            raise CheckerError(self.name, f"request failed: {exc}") from exc

        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            if error and str(error).lower() == "not found":
                logger.info("OK (LeakCheck): %s was not found in any breaches.", email)
                await self._store(cache_key, [], EMAIL_TTL)
            else:
                logger.warning("LeakCheck failed for %s: %s", email, error or "no success flag")
            return []

        breaches = []
        for source in data.get("sources") or []:
            if isinstance(source, dict) and source.get("name"):
                breaches.append(Breach(name=str(source["name"]), date=source.get("date") or None))
            elif isinstance(source, str) and source:
                breaches.append(Breach(name=source))

        if breaches:
            logger.warning("BREACH (LeakCheck): %s is in %d breach(es).", email, len(breaches))
        await self._store(cache_key, [b.to_dict() for b in breaches], EMAIL_TTL)
        return breaches

    async def check_password(self, password: str) -> PasswordCheckResult:
        # The public API has no password lookup
        return PasswordCheckResult()
