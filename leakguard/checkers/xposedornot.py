"""XposedOrNot checker, fetched through the challenge-resilient browser pool."""

import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import quote

from leakguard.cache import JsonCache
from leakguard.checkers.base import ANALYTICS_TTL, EMAIL_TTL, PASSWORD_TTL, BreachChecker
from leakguard.errors import CheckerError, CheckerTimeout, FetchError
from leakguard.models import (
    Analytics,
    Breach,
    BreachDetails,
    ExposedCategory,
    ExposedItem,
    IndustryCount,
    PasswordCheckResult,
    PasswordStrength,
    Risk,
    YearCount,
)
from leakguard.passwords import digest_prefix, parse_composition, password_digest

logger = logging.getLogger(__name__)


def _first(value: Any) -> Any:
    """XposedOrNot wraps most metrics in a one-element list."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def extract_breach_names(payload: Any) -> List[Breach]:
    """Map a ``check-email`` payload (``{"breaches": [[names...]]}``) to breaches."""
    if not isinstance(payload, dict):
        return []
    names = _first(payload.get("breaches")) or []
    return [Breach(name=str(name)) for name in names if name]


def parse_analytics(payload: Any) -> Analytics:
    """Flatten a ``breach-analytics`` payload into :class:`Analytics`."""
    if not isinstance(payload, dict):
        return Analytics()

    summary = payload.get("BreachesSummary") or {}
    breaches = [site for site in (summary.get("site") or "").split(";") if site]

    exposed = payload.get("ExposedBreaches") or {}
    details = [
        BreachDetails.from_dict(item)
        for item in exposed.get("breaches_details") or []
        if isinstance(item, dict)
    ]

    metrics = payload.get("BreachMetrics") or {}

    industries = [
        IndustryCount(name=str(pair[0]), count=_int(pair[1]))
        for pair in _first(metrics.get("industry")) or []
        if isinstance(pair, (list, tuple)) and len(pair) == 2 and _int(pair[1]) > 0
    ]

    strength = _first(metrics.get("passwords_strength")) or {}
    password_strength = PasswordStrength(
        plain_text=_int(strength.get("PlainText")),
        strong_hash=_int(strength.get("StrongHash")),
        unknown=_int(strength.get("Unknown")),
    )

    risk = _first(metrics.get("risk")) or {}
    risk_value = Risk(
        label=str(risk.get("risk_label") or "Unknown"),
        score=_int(risk.get("risk_score")),
    )

    tree = _first(metrics.get("xposed_data")) or {}
    exposed_data = [
        ExposedCategory(
            category=str(category.get("name", "")),
            items=[
                ExposedItem(name=str(item.get("name", "")), value=_int(item.get("value")))
                for item in category.get("children") or []
            ],
        )
        for category in tree.get("children") or []
    ]

    # Year keys look like "y2019"
    yearwise = _first(metrics.get("yearwise_details")) or {}
    years = [
        YearCount(year=str(key)[1:], count=count)
        for key, count in yearwise.items()
        if isinstance(count, int) and count > 0
    ]

    return Analytics(
        breaches=breaches,
        breaches_details=details,
        industries=industries,
        password_strength=password_strength,
        risk=risk_value,
        exposed_data=exposed_data,
        years=years,
    )


class XposedOrNotChecker(BreachChecker):
    """Email, password and analytics lookups against XposedOrNot.

    The API sits behind an anti-bot challenge, so every request goes
    through :class:`leakguard.clearance.ResilientFetcher`. Without an
    explicit *timeout* a fetch may use the fetcher's whole retry budget;
    the aggregator's per-checker deadline still applies on top of it.
    """

    name = "xposedornot"

    def __init__(
        self,
        fetcher,
        *,
        api_url: str = "https://api.xposedornot.com/v1",
        password_url: str = "https://passwords.xposedornot.com/api/v1/pass/anon",
        cache: Optional[JsonCache] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(cache)
        self.fetcher = fetcher
        self.api_url = api_url.rstrip("/")
        self.password_url = password_url.rstrip("/")
        self.timeout = timeout if timeout is not None else fetcher.budget

    def supports_analytics(self) -> bool:
        return True

    async def _fetch(self, url: str) -> Any:
        logger.debug("Fetching %s", url)
        try:
            return await asyncio.wait_for(self.fetcher.fetch_json(url), self.timeout)
        except asyncio.TimeoutError as exc:
            raise CheckerTimeout(self.name, self.timeout) from exc
        except FetchError as exc:
            logger.error("XposedOrNot request failed for %s: %s", url, exc)
            raise CheckerError(self.name, str(exc)) from exc

    async def check_email_breaches(self, email: str) -> List[Breach]:
        cache_key = f"xposed:{email}"
        cached = await self._cached(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return [Breach.from_dict(item) for item in cached]

        url = f"{self.api_url}/check-email/{quote(email)}?include_details=false"
        payload = await self._fetch(url)
        breaches = extract_breach_names(payload)

        await self._store(cache_key, [b.to_dict() for b in breaches], EMAIL_TTL)
        logger.info("Stored %d breaches for %s", len(breaches), email)
        return breaches

    async def check_password(self, password: str) -> PasswordCheckResult:
        if not password:
            return PasswordCheckResult()

        digest = password_digest(password)
        cache_key = f"xposed_password:{digest}"
        cached = await self._cached(cache_key)
        if cached is not None:
            logger.debug("Cache hit for xposed_password:%s...", digest[:10])
            return PasswordCheckResult.from_dict(cached)

        payload = await self._fetch(f"{self.password_url}/{digest_prefix(digest)}")

        if payload is None or (isinstance(payload, dict) and payload.get("Error") == "Not found"):
            result = PasswordCheckResult()
            await self._store(cache_key, result.to_dict(), PASSWORD_TTL)
            return result

        anon = payload.get("SearchPassAnon") if isinstance(payload, dict) else None
        if not isinstance(anon, dict):
            logger.warning("Invalid password check response for %s...", digest[:10])
            raise CheckerError(self.name, "unexpected password response shape")

        digits, alphabets, special_chars, length = parse_composition(anon.get("char"))
        result = PasswordCheckResult(
            found=True,
            count=_int(anon.get("count")),
            digits=digits,
            alphabets=alphabets,
            special_chars=special_chars,
            length=length,
        )
        await self._store(cache_key, result.to_dict(), PASSWORD_TTL)
        return result

    async def get_analytics(self, email: str) -> Analytics:
        cache_key = f"xposed_analytics:{email}"
        cached = await self._cached(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return Analytics.from_dict(cached)

        payload = await self._fetch(f"{self.api_url}/breach-analytics?email={quote(email)}")
        analytics = parse_analytics(payload)

        await self._store(cache_key, analytics.to_dict(), ANALYTICS_TTL)
        logger.info("Stored analytics for %s", email)
        return analytics
