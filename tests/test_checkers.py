"""Tests for the LeakCheck and XposedOrNot checkers."""

import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock

from leakguard.checkers import LeakCheckChecker, XposedOrNotChecker
from leakguard.checkers.xposedornot import extract_breach_names, parse_analytics
from leakguard.errors import CheckerError, CheckerTimeout, ClearanceUnobtainable
from leakguard.models import Breach, PasswordCheckResult
from leakguard.passwords import password_digest


class _Response:
    def __init__(self, status, payload):
        self.status = status
        self.payload = payload

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _Session:
    def __init__(self, response):
        self.response = response
        self.requests = []
        self.closed = False

    def get(self, url, params=None, headers=None):
        self.requests.append((url, params))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    async def close(self):
        self.closed = True


def _leakcheck(response, cache=None, api_key=None):
    session = _Session(response)
    checker = LeakCheckChecker("https://leakcheck.test/api/public", api_key,
                               cache=cache, session=session)
    return checker, session


class TestLeakCheckChecker:
    """Tests for the direct-HTTP checker."""

    @pytest.mark.asyncio
    async def test_sources_mapped_to_breaches(self, cache, store):
        payload = {"success": True, "found": 2, "sources": [
            {"name": "Adobe", "date": "2013-10"},
            {"name": "Canva", "date": ""},
        ]}
        checker, session = _leakcheck(_Response(200, payload), cache=cache)

        result = await checker.check_email_breaches("alice@example.com")

        assert result == [Breach("Adobe", date="2013-10"), Breach("Canva")]
        assert session.requests == [("https://leakcheck.test/api/public", {"check": "alice@example.com"})]
        assert store.ttls["leakcheck:alice@example.com"] == 86400

    @pytest.mark.asyncio
    async def test_api_key_is_sent(self):
        checker, session = _leakcheck(_Response(200, {"success": True, "sources": []}), api_key="k")
        await checker.check_email_breaches("alice@example.com")
        assert session.requests[0][1]["key"] == "k"

    @pytest.mark.asyncio
    async def test_not_found_is_empty_and_cached(self, cache, store):
        checker, _ = _leakcheck(_Response(200, {"success": False, "error": "Not found"}), cache=cache)

        assert await checker.check_email_breaches("alice@example.com") == []
        assert "leakcheck:alice@example.com" in store.ttls

    @pytest.mark.asyncio
    async def test_unsuccessful_answer_is_empty_not_cached(self, cache, store):
        checker, _ = _leakcheck(_Response(200, {"success": False, "error": "Invalid characters"}), cache=cache)

        assert await checker.check_email_breaches("alice@example.com") == []
        assert "leakcheck:alice@example.com" not in store.ttls

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 503, 429])
    async def test_server_errors_raise(self, status, cache, store):
        checker, _ = _leakcheck(_Response(status, {}), cache=cache)

        with pytest.raises(CheckerError):
            await checker.check_email_breaches("alice@example.com")
        assert store.ttls == {}

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        checker, _ = _leakcheck(aiohttp.ClientConnectionError("refused"))
        with pytest.raises(CheckerError):
            await checker.check_email_breaches("alice@example.com")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        checker, _ = _leakcheck(asyncio.TimeoutError())
        with pytest.raises(CheckerError):
            await checker.check_email_breaches("alice@example.com")

    @pytest.mark.asyncio
    async def test_cache_hit_skips_request(self, cache, store):
        await cache.set_json("leakcheck:alice@example.com", [{"name": "Adobe"}], 86400)
        checker, session = _leakcheck(_Response(200, {}), cache=cache)

        assert await checker.check_email_breaches("alice@example.com") == [Breach("Adobe")]
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_no_password_or_analytics(self):
        checker, _ = _leakcheck(_Response(200, {}))
        assert await checker.check_password("secret") == PasswordCheckResult()
        assert checker.supports_analytics() is False

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self):
        checker, session = _leakcheck(_Response(200, {}))
        await checker.close()
        assert session.closed is False


ANALYTICS_PAYLOAD = {
    "BreachesSummary": {"site": "Adobe;LinkedIn"},
    "ExposedBreaches": {"breaches_details": [
        {"breach": "Adobe", "domain": "adobe.com", "xposed_date": "2013", "industry": "Tech",
         "password_risk": "hardtocrack", "xposed_records": 152445165},
    ]},
    "BreachMetrics": {
        "industry": [[["tech", 1], ["fina", 0]]],
        "passwords_strength": [{"PlainText": 0, "StrongHash": 1, "Unknown": 1}],
        "risk": [{"risk_label": "Medium", "risk_score": 45}],
        "xposed_data": [{"children": [
            {"name": "Personal", "children": [{"name": "Names", "value": 2}]},
        ]}],
        "yearwise_details": [{"y2013": 1, "y2012": 1, "y2011": 0}],
    },
}


class TestXposedOrNotParsing:
    """Tests for payload flattening."""

    def test_breach_names(self):
        assert extract_breach_names({"breaches": [["Adobe", "LinkedIn"]]}) == [
            Breach("Adobe"), Breach("LinkedIn")]

    def test_breach_names_from_unexpected_shape(self):
        assert extract_breach_names({"Error": "Not found"}) == []
        assert extract_breach_names(None) == []

    def test_analytics_flattening(self):
        analytics = parse_analytics(ANALYTICS_PAYLOAD)

        assert analytics.breaches == ["Adobe", "LinkedIn"]
        assert analytics.breaches_details[0].domain == "adobe.com"
        assert [(i.name, i.count) for i in analytics.industries] == [("tech", 1)]
        assert analytics.password_strength.strong_hash == 1
        assert (analytics.risk.label, analytics.risk.score) == ("Medium", 45)
        assert analytics.exposed_data[0].category == "Personal"
        assert analytics.exposed_data[0].items[0].value == 2
        assert sorted(y.year for y in analytics.years) == ["2012", "2013"]

    def test_empty_analytics(self):
        analytics = parse_analytics({})
        assert analytics.breaches == []
        assert analytics.risk.label == "Unknown"


def _xposed(cache=None, payload=None, side_effect=None, timeout=30.0):
    fetcher = AsyncMock()
    fetcher.fetch_json.return_value = payload
    if side_effect is not None:
        fetcher.fetch_json.side_effect = side_effect
    checker = XposedOrNotChecker(
        fetcher,
        api_url="https://api.xon.test/v1",
        password_url="https://passwords.xon.test/api/v1/pass/anon",
        cache=cache,
        timeout=timeout,
    )
    return checker, fetcher


class TestXposedOrNotChecker:
    """Tests for the challenge-resilient checker."""

    def test_default_timeout_spans_fetch_retry_budget(self):
        fetcher = AsyncMock()
        fetcher.budget = 385.0

        checker = XposedOrNotChecker(fetcher)

        assert checker.timeout == 385.0
        assert XposedOrNotChecker(fetcher, timeout=10.0).timeout == 10.0

    @pytest.mark.asyncio
    async def test_email_lookup(self, cache, store):
        checker, fetcher = _xposed(cache, payload={"breaches": [["Adobe"]]})

        assert await checker.check_email_breaches("alice@example.com") == [Breach("Adobe")]
        fetcher.fetch_json.assert_awaited_once_with(
            "https://api.xon.test/v1/check-email/alice%40example.com?include_details=false")
        assert store.ttls["xposed:alice@example.com"] == 86400

    @pytest.mark.asyncio
    async def test_email_not_found(self, cache):
        checker, _ = _xposed(cache, payload=None)
        assert await checker.check_email_breaches("alice@example.com") == []

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_checker_error(self, cache, store):
        checker, _ = _xposed(cache, side_effect=ClearanceUnobtainable("https://api.xon.test"))

        with pytest.raises(CheckerError):
            await checker.check_email_breaches("alice@example.com")
        assert store.ttls == {}

    @pytest.mark.asyncio
    async def test_slow_fetch_times_out(self):
        async def slow(url):
            await asyncio.sleep(5)

        checker, _ = _xposed(side_effect=slow, timeout=0.05)
        with pytest.raises(CheckerTimeout):
            await checker.check_email_breaches("alice@example.com")

    @pytest.mark.asyncio
    async def test_password_sends_only_digest_prefix(self, cache):
        payload = {"SearchPassAnon": {"count": "37", "char": "D:3;A:3;S:1;L:7"}}
        checker, fetcher = _xposed(cache, payload=payload)

        result = await checker.check_password("abc123!")

        url = fetcher.fetch_json.await_args.args[0]
        prefix = password_digest("abc123!")[:10]
        assert url == f"https://passwords.xon.test/api/v1/pass/anon/{prefix}"
        assert "abc123!" not in url
        assert result == PasswordCheckResult(
            found=True, count=37, digits=3, alphabets=3, special_chars=1, length=7)

    @pytest.mark.asyncio
    async def test_password_not_found_is_cached(self, cache, store):
        checker, _ = _xposed(cache, payload={"Error": "Not found"})

        assert await checker.check_password("abc123!") == PasswordCheckResult()
        assert f"xposed_password:{password_digest('abc123!')}" in store.ttls

    @pytest.mark.asyncio
    async def test_password_unexpected_shape_raises(self, cache, store):
        checker, _ = _xposed(cache, payload={"unexpected": True})

        with pytest.raises(CheckerError):
            await checker.check_password("abc123!")
        assert store.ttls == {}

    @pytest.mark.asyncio
    async def test_analytics_cached_for_one_week(self, cache, store):
        checker, fetcher = _xposed(cache, payload=ANALYTICS_PAYLOAD)

        first = await checker.get_analytics("alice@example.com")
        second = await checker.get_analytics("alice@example.com")

        assert checker.supports_analytics() is True
        assert first == second
        assert fetcher.fetch_json.await_count == 1
        assert store.ttls["xposed_analytics:alice@example.com"] == 604800
