"""Shared fixtures and fakes for the test suite."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from leakguard.cache import JsonCache, MemoryCacheStore
from leakguard.checkers.base import BreachChecker
from leakguard.errors import CacheUnavailable, CheckerError
from leakguard.models import Analytics, Breach, PasswordCheckResult


class RecordingStore(MemoryCacheStore):
    """Memory store that records every call and can be switched offline."""

    def __init__(self, offline: bool = False, clock=None):
        super().__init__(clock)
        self.offline = offline
        self.calls: List[tuple] = []
        self.ttls: Dict[str, int] = {}

    def _record(self, *call):
        self.calls.append(call)
        if self.offline:
            raise CacheUnavailable("connection refused")

    async def get(self, key):
        self._record("get", key)
        return await super().get(key)

    async def set(self, key, value, ttl=0):
        self._record("set", key)
        self.ttls[key] = ttl
        await super().set(key, value, ttl)

    async def delete(self, key):
        self._record("delete", key)
        await super().delete(key)

    async def increment(self, key):
        self._record("increment", key)
        return await super().increment(key)

    async def keys(self, pattern):
        self._record("keys", pattern)
        return await super().keys(pattern)

    async def delete_by_pattern(self, pattern):
        self._record("delete_by_pattern", pattern)
        return await super().delete_by_pattern(pattern)


class StubChecker(BreachChecker):
    """Checker returning canned results (or raising canned errors)."""

    def __init__(
        self,
        name: str,
        *,
        breaches: Any = (),
        password: Any = None,
        analytics: Any = None,
        analytics_capable: bool = False,
        delay: float = 0.0,
    ):
        super().__init__()
        self.name = name
        self.breaches = breaches
        self.password = password if password is not None else PasswordCheckResult()
        self.analytics = analytics
        self.analytics_capable = analytics_capable
        self.delay = delay
        self.email_calls: List[str] = []
        self.password_calls: List[str] = []
        self.analytics_calls: List[str] = []
        self.closed = False

    async def _answer(self, value):
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(value, Exception):
            raise value
        return value

    async def check_email_breaches(self, email):
        self.email_calls.append(email)
        result = await self._answer(self.breaches)
        return list(result)

    async def check_password(self, password):
        self.password_calls.append(password)
        return await self._answer(self.password)

    def supports_analytics(self):
        return self.analytics_capable

    async def get_analytics(self, email):
        self.analytics_calls.append(email)
        return await self._answer(self.analytics if self.analytics is not None else Analytics())

    async def close(self):
        self.closed = True


class FakeDriver:
    """Scripted page driver for the clearance protocol.

    *statuses* are returned by successive ``goto`` calls (the last one
    repeats); *cookies* likewise for ``clearance_cookie``.
    """

    def __init__(
        self,
        statuses: List[Optional[int]],
        *,
        cookies: Optional[List[Optional[str]]] = None,
        captcha: bool = False,
        token: Optional[str] = "token-abcdef123",
        challenge_cleared: bool = True,
        payload: Any = None,
    ):
        self.statuses = list(statuses)
        self.cookies = list(cookies) if cookies is not None else ["clearance-value-1"]
        self.captcha = captcha
        self.token = token
        self.challenge_cleared = challenge_cleared
        self.payload = payload if payload is not None else {"ok": True}
        self.gotos: List[str] = []
        self.reloads = 0
        self.attached: List[str] = []
        self.detached = False

    @staticmethod
    def _next(items):
        return items.pop(0) if len(items) > 1 else items[0]

    async def goto(self, url):
        self.gotos.append(url)
        return self._next(self.statuses)

    async def wait_challenge_cleared(self, timeout):
        return self.challenge_cleared

    async def has_captcha(self):
        return self.captcha

    async def wait_captcha_token(self, timeout):
        return self.token

    async def clearance_cookie(self):
        return self._next(self.cookies)

    async def attach_clearance(self, value):
        self.attached.append(value)

    async def reload(self):
        self.reloads += 1

    async def read_json(self):
        return self.payload

    def detach(self):
        self.detached = True


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def cache(store):
    return JsonCache(store)


@pytest.fixture
def offline_cache():
    return JsonCache(RecordingStore(offline=True))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def breach_a():
    return Breach(name="Adobe", domain="adobe.com", date="2013-10")


@pytest.fixture
def breach_b():
    return Breach(name="LinkedIn", domain="linkedin.com", date="2012-05")


def failing(name="down"):
    return CheckerError(name, "service unavailable (HTTP 503)")
