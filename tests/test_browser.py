"""Tests for the page pool and the Playwright page driver."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import Error as PWError

from leakguard.browser import CLEARANCE_COOKIE, PagePool, PagePoolSlot, PlaywrightPageDriver
from leakguard.errors import NavigationFailed


def _slot(slot_id, closed=False):
    page = MagicMock()
    page.is_closed.return_value = closed
    return PagePoolSlot(slot_id=slot_id, context=MagicMock(), page=page)


class _Factory:
    def __init__(self, fail_after=None):
        self.created = []
        self.destroyed = []
        self.fail_after = fail_after

    async def create(self):
        if self.fail_after is not None and len(self.created) >= self.fail_after:
            raise PWError("Executable doesn't exist")
        slot = _slot(len(self.created) + 1)
        self.created.append(slot)
        return slot

    async def destroy(self, slot):
        self.destroyed.append(slot)

    async def close(self):
        pass


class TestPagePool:
    """Tests for slot checkout, overflow and self-heal."""

    @pytest.mark.asyncio
    async def test_prewarm(self):
        pool = PagePool(_Factory(), size=3)
        await pool.start()
        assert pool.total == 3
        assert pool.idle == 3

    @pytest.mark.asyncio
    async def test_slot_is_exclusive_and_returned(self):
        pool = PagePool(_Factory(), size=2)
        await pool.start()

        async with pool.slot() as first:
            assert pool.idle == 1
            async with pool.slot() as second:
                assert second is not first
                assert pool.idle == 0
        assert pool.idle == 2

    @pytest.mark.asyncio
    async def test_overflow_creates_slot_instead_of_blocking(self):
        factory = _Factory()
        pool = PagePool(factory, size=1)
        await pool.start()

        async with pool.slot():
            async with pool.slot():
                assert pool.total == 2
        assert pool.idle == 2

    @pytest.mark.asyncio
    async def test_slot_returned_on_error(self):
        pool = PagePool(_Factory(), size=1)
        await pool.start()

        with pytest.raises(RuntimeError):
            async with pool.slot():
                raise RuntimeError("boom")

        assert pool.idle == 1

    @pytest.mark.asyncio
    async def test_dead_slot_is_replaced(self):
        factory = _Factory()
        pool = PagePool(factory, size=1)
        await pool.start()

        async with pool.slot() as slot:
            slot.page.is_closed.return_value = True

        assert factory.destroyed == [slot]
        assert pool.total == 1
        assert pool.idle == 1
        async with pool.slot() as fresh:
            assert fresh.slot_id == 2

    @pytest.mark.asyncio
    async def test_prewarm_failure_is_tolerated(self):
        pool = PagePool(_Factory(fail_after=1), size=3)
        await pool.start()
        assert pool.total == 1

    @pytest.mark.asyncio
    async def test_close_destroys_every_slot(self):
        factory = _Factory()
        pool = PagePool(factory, size=2)
        await pool.start()

        await pool.close()

        assert len(factory.destroyed) == 2
        assert pool.total == 0


def _driver():
    slot = _slot(1)
    slot.page.goto = AsyncMock()
    slot.page.inner_text = AsyncMock()
    slot.page.query_selector = AsyncMock(return_value=None)
    slot.context.cookies = AsyncMock(return_value=[])
    slot.context.add_cookies = AsyncMock()
    return PlaywrightPageDriver(slot), slot


class TestPlaywrightPageDriver:
    """Tests for the page driver against a mocked page."""

    def test_registers_and_removes_response_listener(self):
        driver, slot = _driver()
        slot.page.on.assert_called_once_with("response", driver._on_response)
        driver.detach()
        slot.page.remove_listener.assert_called_once_with("response", driver._on_response)

    @pytest.mark.asyncio
    async def test_goto_returns_status(self):
        driver, slot = _driver()
        slot.page.goto.return_value = MagicMock(status=403)
        assert await driver.goto("https://x.test/a") == 403

    @pytest.mark.asyncio
    async def test_goto_wraps_playwright_error(self):
        driver, slot = _driver()
        slot.page.goto.side_effect = PWError("net::ERR_NAME_NOT_RESOLVED")
        with pytest.raises(NavigationFailed):
            await driver.goto("https://x.test/a")

    @pytest.mark.asyncio
    async def test_clearance_cookie(self):
        driver, slot = _driver()
        slot.context.cookies.return_value = [
            {"name": "other", "value": "1"},
            {"name": CLEARANCE_COOKIE, "value": "cf-value"},
        ]
        assert await driver.clearance_cookie() == "cf-value"

    @pytest.mark.asyncio
    async def test_attach_clearance_uses_origin(self):
        driver, slot = _driver()
        slot.page.goto.return_value = MagicMock(status=200)
        await driver.goto("https://api.x.test/v1/check?q=1")

        await driver.attach_clearance("cf-value")

        cookie = slot.context.add_cookies.await_args.args[0][0]
        assert cookie == {"name": CLEARANCE_COOKIE, "value": "cf-value", "url": "https://api.x.test"}

    @pytest.mark.asyncio
    async def test_read_json_prefers_intercepted_body(self):
        driver, slot = _driver()
        slot.page.goto.return_value = MagicMock(status=200)
        await driver.goto("https://x.test/a")
        response = MagicMock(url="https://x.test/a", status=200)
        response.text = AsyncMock(return_value='{"source": "network"}')
        driver._on_response(response)

        assert await driver.read_json() == {"source": "network"}
        slot.page.inner_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_json_falls_back_to_body_text(self):
        driver, slot = _driver()
        slot.page.inner_text.return_value = '{"source": "page"}'
        assert await driver.read_json() == {"source": "page"}

    @pytest.mark.asyncio
    async def test_read_json_none_when_not_json(self):
        driver, slot = _driver()
        slot.page.inner_text.return_value = "<html>Just a moment...</html>"
        assert await driver.read_json() is None

    @pytest.mark.asyncio
    async def test_error_responses_are_not_intercepted(self):
        driver, slot = _driver()
        slot.page.goto.return_value = MagicMock(status=403)
        await driver.goto("https://x.test/a")
        driver._on_response(MagicMock(url="https://x.test/a", status=403))
        slot.page.inner_text.return_value = "[]"

        assert await driver.read_json() == []
