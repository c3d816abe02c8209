"""Breach monitoring: subscriptions and the periodic new-breach scan."""

import asyncio
import contextlib
import logging
from typing import Dict, Iterable, List, Optional, Set

from leakguard.cache import JsonCache
from leakguard.models import STATUS_UNAVAILABLE, Breach
from leakguard.notify import format_new_breaches

logger = logging.getLogger(__name__)

MONITOR_INTERVAL = 24 * 60 * 60


def new_breaches(previous: Iterable[Breach], current: Iterable[Breach]) -> List[Breach]:
    """Breaches in *current* whose ``(name, domain)`` pair is not in *previous*."""
    seen = {(b.name, b.domain) for b in previous}
    return [b for b in current if (b.name, b.domain) not in seen]


class MonitorRegistry:
    """Monitored emails, kept in memory and persisted as ``monitor:{email}``.

    The persisted record holds the subscriber chat id. Next to it,
    ``monitor_seen:{email}`` keeps the breaches already reported. Neither
    expires, so a baseline outlives the monitor interval.
    """

    def __init__(self, cache: JsonCache):
        self.cache = cache
        self._active: Set[str] = set()

    def emails(self) -> List[str]:
        return sorted(self._active)

    def __contains__(self, email: str) -> bool:
        return email in self._active

    def __len__(self) -> int:
        return len(self._active)

    async def add(self, email: str, chat_id: int) -> None:
        self._active.add(email)
        await self.cache.set_json(f"monitor:{email}", int(chat_id), 0)
        logger.info("Started monitoring email: %s", email)

    async def remove(self, email: str) -> bool:
        """Stop monitoring *email*; returns whether it was monitored."""
        known = email in self._active or await self.chat_id_for(email) is not None
        self._active.discard(email)
        await self.cache.delete(f"monitor:{email}")
        await self.cache.delete(f"monitor_seen:{email}")
        if known:
            logger.info("Stopped monitoring email: %s", email)
        return known

    async def chat_id_for(self, email: str) -> Optional[int]:
        value = await self.cache.get_json(f"monitor:{email}")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed chat id for %s: %r", email, value)
            return None

    async def baseline(self, email: str) -> Optional[List[Breach]]:
        """Breaches the subscriber has already been told about, if recorded."""
        value = await self.cache.get_json(f"monitor_seen:{email}")
        if value is None:
            return None
        return [Breach.from_dict(item) for item in value]

    async def save_baseline(self, email: str, breaches: Iterable[Breach]) -> None:
        await self.cache.set_json(f"monitor_seen:{email}", [b.to_dict() for b in breaches], 0)

    async def restore(self) -> int:
        """Reload the monitored set from persisted subscriptions."""
        keys = await self.cache.keys("monitor:*")
        for key in keys:
            self._active.add(key.split(":", 1)[1])
        if keys:
            logger.info("Restored %d monitored email(s)", len(keys))
        return len(keys)


class BreachMonitor:
    """Periodically re-check monitored emails and alert on new breaches.

    Emails are processed one after another. For each one all checkers are
    queried afresh and the subscriber is notified about any breach whose
    ``(name, domain)`` pair is not in the baseline of already reported
    breaches. Until a baseline exists, the cached email snapshot stands in
    for it. The snapshot and the baseline are only written once the alert
    went out, so a failed delivery is retried on the next cycle.
    """

    def __init__(self, aggregator, notifier, *, interval: float = MONITOR_INTERVAL):
        self.aggregator = aggregator
        self.registry: MonitorRegistry = aggregator.registry
        self.notifier = notifier
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def check_email(self, email: str, chat_id: int) -> List[Breach]:
        previous = await self.registry.baseline(email)
        if previous is None:
            previous = await self.aggregator.cached_email_breaches(email) or []
        report = await self.aggregator.collect_email_breaches(email)
        if report.status == STATUS_UNAVAILABLE:
            logger.warning("Skipping %s this cycle: no source answered", email)
            return []

        found = new_breaches(previous, report.breaches)
        if found:
            await self.notifier.send(chat_id, format_new_breaches(email, found))
            logger.info("Notified chat %s about %d new breach(es) for %s", chat_id, len(found), email)
        else:
            logger.debug("No new breaches for %s", email)

        await self.aggregator.store_email_breaches(email, report.breaches)
        await self.registry.save_baseline(email, previous + found)
        return found

    async def run_cycle(self) -> Dict[str, List[Breach]]:
        """Run one scan over every monitored email.

        Returns:
            Mapping of email to the new breaches that were reported.
        """
        emails = self.registry.emails()
        logger.info("Running breach monitor over %d email(s)", len(emails))
        alerts: Dict[str, List[Breach]] = {}
        for email in emails:
            chat_id = await self.registry.chat_id_for(email)
            if chat_id is None:
                logger.debug("No subscriber recorded for %s; skipping", email)
                continue
            try:
                found = await self.check_email(email, chat_id)
            except Exception as exc:
                logger.error("Monitoring failed for %s: %s", email, exc)
                continue
            if found:
                alerts[email] = found
        return alerts

    async def run_forever(self) -> None:
        logger.info("Breach monitor started; interval %ss", self.interval)
        while True:
            await asyncio.sleep(self.interval)
            await self.run_cycle()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Breach monitor stopped")
