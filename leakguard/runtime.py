"""Wiring: build the cache, fetch layer, checkers and aggregator from config."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from leakguard.aggregator import BreachAggregator
from leakguard.cache import CacheStore, JsonCache, MemoryCacheStore, RedisCacheStore
from leakguard.checkers import LeakCheckChecker, XposedOrNotChecker
from leakguard.clearance import ResilientFetcher
from leakguard.config import load_config
from leakguard.notify import LogNotifier, TelegramNotifier

logger = logging.getLogger(__name__)


def build_cache(cfg: dict, store: Optional[CacheStore] = None) -> JsonCache:
    """Wrap *store* when given, else Redis when configured, else a new memory store."""
    if store is not None:
        return JsonCache(store)
    if cfg.get("redis_url"):
        return JsonCache(RedisCacheStore.from_url(cfg["redis_url"]))
    logger.warning("REDIS_URL not set; using an in-process cache")
    return JsonCache(MemoryCacheStore())


def build_notifier(cfg: dict):
    if cfg.get("telegram_bot_token"):
        return TelegramNotifier(cfg["telegram_bot_token"])
    logger.warning("TELEGRAM_BOT_TOKEN not set; alerts will only be logged")
    return LogNotifier()


@asynccontextmanager
async def open_aggregator(
    cfg: Optional[dict] = None,
    store: Optional[CacheStore] = None,
) -> AsyncIterator[BreachAggregator]:
    """Yield a ready :class:`BreachAggregator` and release everything on exit.

    A *store* passed in belongs to the caller: it is used as is and left
    open, so its contents outlive this aggregator.
    """
    cfg = cfg or load_config()
    cache = build_cache(cfg, store)
    fetcher = ResilientFetcher.from_config(cfg)
    checkers = [
        LeakCheckChecker(cfg["leakcheck_api_url"], cfg.get("leakcheck_api_key"), cache=cache),
        XposedOrNotChecker(
            fetcher,
            api_url=cfg["xposedornot_api_url"],
            password_url=cfg["xposedornot_password_url"],
            cache=cache,
        ),
    ]
    aggregator = BreachAggregator(checkers, cache, checker_timeout=float(cfg["checker_timeout"]))
    if aggregator.checker_timeout < fetcher.budget:
        logger.info("Checker timeout of %.0fs caps the %.0fs fetch retry budget; "
                    "raise CHECKER_TIMEOUT to allow every attempt",
                    aggregator.checker_timeout, fetcher.budget)
    try:
        await fetcher.start()
        await aggregator.registry.restore()
        yield aggregator
    finally:
        await aggregator.close()
        await fetcher.close()
        if store is None:
            await cache.store.close()
