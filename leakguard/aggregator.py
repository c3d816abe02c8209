"""Fan-out breach aggregation with differentiated cache lifetimes.

Every public lookup is cache-first. On a miss all registered checkers are
called concurrently, each under its own timeout; a checker that fails or
times out contributes nothing and never aborts its siblings.

Cache layout (TTL in seconds)::

    email:{email}         merged breach list   86400
    password:{digest}     password result      86400
    analytics:{email}     analytics            604800
    monitor:{email}       subscriber chat id   no expiry
    monitor_seen:{email}  reported breaches    no expiry
    stats:{metric}        usage counters       no expiry
"""

import re
import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from email_validator import validate_email, EmailNotValidError

from leakguard.cache import JsonCache
from leakguard.checkers.base import ANALYTICS_TTL, EMAIL_TTL, PASSWORD_TTL, BreachChecker
from leakguard.errors import CheckerTimeout, InvalidInput
from leakguard.models import (
    STATUS_UNAVAILABLE,
    Analytics,
    Breach,
    EmailReport,
    PasswordCheckResult,
)
from leakguard.monitor import MonitorRegistry
from leakguard.passwords import local_password_stats, password_digest

logger = logging.getLogger(__name__)

CHECKER_TIMEOUT = 35.0

STAT_METRICS = ("email_checks", "password_checks", "analytics_requests")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email_address(email: Any) -> str:
    """Validate an email address and return its normalized form.

    Raises:
        InvalidInput: if *email* is not of the form ``local@domain.tld``.
    """
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise InvalidInput("Invalid email format")
    try:
        valid = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidInput(f"Invalid email format: {exc}") from exc
    return valid.normalized


def remove_duplicates(breaches: Iterable[Breach]) -> List[Breach]:
    """Drop breaches whose name repeats case-insensitively; first one wins."""
    seen = set()
    unique = []
    for breach in breaches:
        key = breach.name.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(breach)
    return unique


class BreachAggregator:
    """Query every checker, merge the answers and cache the result."""

    def __init__(
        self,
        checkers: Iterable[BreachChecker],
        cache: JsonCache,
        *,
        checker_timeout: float = CHECKER_TIMEOUT,
        registry: Optional[MonitorRegistry] = None,
    ):
        self.checkers = list(checkers)
        self.cache = cache
        self.checker_timeout = checker_timeout
        self.registry = registry if registry is not None else MonitorRegistry(cache)
        logger.info("BreachAggregator initialized with %d checker(s): %s",
                    len(self.checkers), ", ".join(c.name for c in self.checkers))

    async def close(self) -> None:
        for checker in self.checkers:
            await checker.close()

    # ---------------------- fan-out ----------------------

    async def _settle(
        self,
        checkers: List[BreachChecker],
        operation: str,
        call: Callable[[BreachChecker], Awaitable[Any]],
    ) -> Tuple[List[Tuple[BreachChecker, Any]], Dict[str, str]]:
        """Run *call* on every checker and wait for all of them to settle.

        Returns:
            ``(successes, failures)`` where successes keep checker order and
            failures map checker name to the failure reason.
        """

        async def guarded(checker: BreachChecker) -> Any:
            try:
                return await asyncio.wait_for(call(checker), timeout=self.checker_timeout)
            except asyncio.TimeoutError as exc:
                raise CheckerTimeout(checker.name, self.checker_timeout) from exc

        results = await asyncio.gather(*(guarded(c) for c in checkers), return_exceptions=True)

        successes: List[Tuple[BreachChecker, Any]] = []
        failures: Dict[str, str] = {}
        for checker, result in zip(checkers, results):
            if isinstance(result, Exception):
                logger.warning("Checker %s failed during %s: %s", checker.name, operation, result)
                failures[checker.name] = str(result) or result.__class__.__name__
            else:
                successes.append((checker, result))
        return successes, failures

    async def _bump(self, metric: str) -> None:
        await self.cache.increment(f"stats:{metric}")

    # ---------------------- email ----------------------

    async def check_email_breaches(self, email: str) -> List[Breach]:
        """Return the merged, de-duplicated breaches for *email*."""
        report = await self.check_email_report(email)
        return report.breaches

    async def check_email_report(self, email: str) -> EmailReport:
        """Like :meth:`check_email_breaches` but report which sources answered."""
        email = validate_email_address(email)
        await self._bump("email_checks")

        cached = await self.cached_email_breaches(email)
        if cached is not None:
            logger.debug("Cache hit for email:%s", email)
            return EmailReport(email=email, breaches=cached, from_cache=True)

        return await self._collect_email(email)

    async def refresh_email_breaches(self, email: str) -> EmailReport:
        """Query every checker for *email*, ignoring any cached snapshot.

        The fresh result replaces the snapshot unless every source failed.
        """
        report = await self.collect_email_breaches(email)
        if report.status != STATUS_UNAVAILABLE:
            await self.store_email_breaches(report.email, report.breaches)
        return report

    async def collect_email_breaches(self, email: str) -> EmailReport:
        """Query every checker for *email* without touching the cache."""
        return await self._collect_email(validate_email_address(email), store=False)

    async def _collect_email(self, email: str, store: bool = True) -> EmailReport:
        logger.info("Checking breaches for %s", email)
        successes, failures = await self._settle(
            self.checkers, "email check", lambda c: c.check_email_breaches(email))

        merged: List[Breach] = []
        for checker, breaches in successes:
            logger.debug("Checker %s returned %d breaches", checker.name, len(breaches))
            merged.extend(breaches)

        report = EmailReport(
            email=email,
            breaches=remove_duplicates(merged),
            succeeded=[checker.name for checker, _ in successes],
            failed=failures,
        )
        if report.status == STATUS_UNAVAILABLE:
            logger.error("All sources failed for %s; result not cached", email)
        elif store:
            await self.store_email_breaches(email, report.breaches)
        return report

    async def cached_email_breaches(self, email: str) -> Optional[List[Breach]]:
        cached = await self.cache.get_json(f"email:{email}")
        if cached is None:
            return None
        return [Breach.from_dict(item) for item in cached]

    async def store_email_breaches(self, email: str, breaches: List[Breach]) -> None:
        await self.cache.set_json(f"email:{email}", [b.to_dict() for b in breaches], EMAIL_TTL)
        logger.info("Stored %d breaches for %s", len(breaches), email)

    # ---------------------- password ----------------------

    async def check_password(self, password: str) -> PasswordCheckResult:
        """Check a password against every source by digest prefix only.

        Counts from sources that report a match are summed. When no source
        reports one, the locally computed composition is returned with
        ``found=False``; that fallback is cached like a confirmed result.
        """
        if not password:
            logger.warning("Empty password provided")
            return local_password_stats("")
        await self._bump("password_checks")

        digest = password_digest(password)
        cache_key = f"password:{digest}"
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            logger.debug("Cache hit for password:%s...", digest[:10])
            return PasswordCheckResult.from_dict(cached)

        logger.info("Checking password hash %s...", digest[:10])
        successes, _ = await self._settle(
            self.checkers, "password check", lambda c: c.check_password(password))

        result = local_password_stats(password)
        for checker, value in successes:
            if value.found:
                logger.debug("Checker %s found password with count %d", checker.name, value.count)
                result = replace(result, found=True, count=result.count + value.count)

        await self.cache.set_json(cache_key, result.to_dict(), PASSWORD_TTL)
        logger.info("Stored password check result for hash %s...", digest[:10])
        return result

    # ---------------------- analytics ----------------------

    async def get_analytics(self, email: str) -> Analytics:
        """Return breach analytics for *email*; the last source to answer wins."""
        email = validate_email_address(email)
        await self._bump("analytics_requests")

        cache_key = f"analytics:{email}"
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return Analytics.from_dict(cached)

        logger.info("Fetching analytics for %s", email)
        capable = [c for c in self.checkers if c.supports_analytics()]
        successes, failures = await self._settle(
            capable, "analytics", lambda c: c.get_analytics(email))

        analytics = Analytics()
        for checker, value in successes:
            logger.debug("Checker %s returned analytics", checker.name)
            analytics = value

        if failures and not successes:
            logger.error("All analytics sources failed for %s; result not cached", email)
            return analytics

        await self.cache.set_json(cache_key, analytics.to_dict(), ANALYTICS_TTL)
        logger.info("Stored analytics for %s", email)
        return analytics

    # ---------------------- monitoring & admin ----------------------

    async def monitor_email(self, email: str, chat_id: int) -> None:
        """Subscribe *chat_id* to new-breach alerts for *email* (idempotent)."""
        await self.registry.add(validate_email_address(email), chat_id)

    async def stop_monitoring(self, email: str) -> bool:
        """Unsubscribe *email*; the address is normalized as on subscribe."""
        return await self.registry.remove(validate_email_address(email))

    async def get_stats(self) -> Dict[str, int]:
        stats = {}
        for metric in STAT_METRICS:
            value = await self.cache.get_json(f"stats:{metric}")
            stats[metric] = int(value or 0)
        return stats

    async def clear_cache(self, pattern: str = "*") -> int:
        deleted = await self.cache.delete_by_pattern(pattern)
        logger.info("Cleared %d cache key(s) for pattern %s", deleted, pattern)
        return deleted
