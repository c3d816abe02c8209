"""Pooled Playwright contexts and the page driver used by the clearance protocol.

Each pool slot is an isolated browser context with one page. A slot is
checked out by exactly one fetch at a time and always returned, whatever
the outcome of the fetch.
"""

import asyncio
import itertools
import json
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional
from urllib.parse import urlparse

from playwright.async_api import async_playwright, Error as PWError, TimeoutError as PWTimeoutError

from leakguard.errors import NavigationFailed

logger = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0",
)

# Seconds allowed for a page navigation and for a reload between attempts
NAVIGATION_TIMEOUT = 60.0
RELOAD_TIMEOUT = 30.0

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--window-size=1920,1080",
    "--disable-blink-features=AutomationControlled",
]

CLEARANCE_COOKIE = "cf_clearance"
CAPTCHA_SELECTOR = 'input[name="cf-turnstile-response"]'
CHALLENGE_TITLE = "Just a moment"


@dataclass
class PagePoolSlot:
    """An exclusively-owned automation context."""

    slot_id: int
    context: Any
    page: Any

    def alive(self) -> bool:
        try:
            return not self.page.is_closed()
        except PWError:
            return False


async def _block_heavy_assets(route):
    if route.request.resource_type in {"image", "media", "font"}:
        await route.abort()
    else:
        await route.continue_()


class PlaywrightSlotFactory:
    """Creates pool slots on a single shared Chromium instance."""

    def __init__(self, *, headless: bool = True, executable_path: Optional[str] = None):
        self.headless = headless
        self.executable_path = executable_path
        self._pw = None
        self._browser = None
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def _ensure_started(self):
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return
            if self._pw is None:
                self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=self.headless,
                executable_path=self.executable_path or None,
                args=LAUNCH_ARGS,
            )
            logger.info("Playwright browser initialized")

    async def create(self) -> PagePoolSlot:
        await self._ensure_started()
        context = await self._browser.new_context(
            user_agent=random.choice(USER_AGENTS),
            viewport={"width": 1920, "height": 1080},
            locale="en-US",
            timezone_id="UTC",
            extra_http_headers={
                "Accept-Language": "en-US,en;q=0.9",
                "Accept": "application/json, text/plain, */*",
            },
        )
        await context.add_init_script(
            "Object.defineProperty(navigator, 'webdriver', { get: () => false });"
        )
        await context.route("**/*", _block_heavy_assets)
        page = await context.new_page()
        return PagePoolSlot(slot_id=next(self._ids), context=context, page=page)

    async def destroy(self, slot: PagePoolSlot) -> None:
        try:
            await slot.context.close()
        except PWError as exc:
            logger.debug("Closing slot %d failed: %s", slot.slot_id, exc)

    async def close(self) -> None:
        """Cleanly close the shared browser and Playwright runtime."""
        try:
            if self._browser is not None:
                await self._browser.close()
        except PWError as exc:
            logger.debug("Browser close failed: %s", exc)
        try:
            if self._pw is not None:
                await self._pw.stop()
        except PWError as exc:
            logger.debug("Playwright stop failed: %s", exc)
        self._browser = None
        self._pw = None
        logger.info("Playwright browser closed")


class PagePool:
    """Bounded pool of automation slots.

    The pool is pre-warmed with *size* slots. When every slot is checked
    out, a new one is created on demand instead of blocking; slots are never
    discarded except when their page died, in which case a replacement is
    created on release.
    """

    def __init__(self, factory, size: int = 5):
        self.factory = factory
        self.size = size
        self._idle: asyncio.Queue = asyncio.Queue()
        self._slots: List[PagePoolSlot] = []

    @property
    def total(self) -> int:
        return len(self._slots)

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    async def start(self) -> None:
        for _ in range(self.size - self.total):
            try:
                self._idle.put_nowait(await self._create())
            except PWError as exc:
                logger.error("Browser pool prewarm failed; slots will be created on demand: %s", exc)
                break
        logger.info("Page pool ready with %d slot(s)", self.total)

    async def _create(self) -> PagePoolSlot:
        slot = await self.factory.create()
        self._slots.append(slot)
        return slot

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[PagePoolSlot]:
        """Check out a slot for the duration of the ``async with`` block."""
        try:
            slot = self._idle.get_nowait()
        except asyncio.QueueEmpty:
            logger.debug("Page pool exhausted (%d slots); adding one", self.total)
            slot = await self._create()
        try:
            yield slot
        finally:
            await self._release(slot)

    async def _release(self, slot: PagePoolSlot) -> None:
        if slot.alive():
            self._idle.put_nowait(slot)
            return
        logger.warning("Slot %d page was closed; replacing it", slot.slot_id)
        self._slots.remove(slot)
        await self.factory.destroy(slot)
        try:
            self._idle.put_nowait(await self._create())
        except PWError as exc:
            logger.warning("Could not replace slot %d: %s", slot.slot_id, exc)

    async def close(self) -> None:
        while not self._idle.empty():
            self._idle.get_nowait()
        for slot in self._slots:
            await self.factory.destroy(slot)
        self._slots.clear()
        await self.factory.close()


class PlaywrightPageDriver:
    """Drives one pool slot through the steps of the clearance protocol."""

    def __init__(self, slot: PagePoolSlot):
        self.page = slot.page
        self.context = slot.context
        self._url: Optional[str] = None
        self._response = None
        self.page.on("response", self._on_response)

    def _on_response(self, response) -> None:
        if response.url == self._url and response.status < 400:
            self._response = response

    def detach(self) -> None:
        self.page.remove_listener("response", self._on_response)

    async def goto(self, url: str) -> Optional[int]:
        self._url = url
        self._response = None
        try:
            response = await self.page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT * 1000)
        except PWError as exc:
            raise NavigationFailed(url, f"navigation to {url} failed: {exc}") from exc
        return response.status if response is not None else None

    async def wait_challenge_cleared(self, timeout: float) -> bool:
        try:
            await self.page.wait_for_function(
                f"() => !document.title.includes('{CHALLENGE_TITLE}')",
                timeout=timeout * 1000,
            )
            return True
        except PWTimeoutError:
            return False

    async def has_captcha(self) -> bool:
        return await self.page.query_selector(CAPTCHA_SELECTOR) is not None

    async def wait_captcha_token(self, timeout: float) -> Optional[str]:
        try:
            await self.page.wait_for_function(
                f"() => {{ const el = document.querySelector('{CAPTCHA_SELECTOR}');"
                " return !!(el && el.value); }",
                timeout=timeout * 1000,
            )
            return await self.page.eval_on_selector(CAPTCHA_SELECTOR, "el => el.value")
        except PWError:
            return None

    async def clearance_cookie(self) -> Optional[str]:
        cookies = await self.context.cookies(self._url)
        for cookie in cookies:
            if cookie.get("name") == CLEARANCE_COOKIE and cookie.get("value"):
                return cookie["value"]
        return None

    async def attach_clearance(self, value: str) -> None:
        parsed = urlparse(self._url)
        await self.context.add_cookies([{
            "name": CLEARANCE_COOKIE,
            "value": value,
            "url": f"{parsed.scheme}://{parsed.netloc}",
        }])

    async def reload(self) -> None:
        try:
            await self.page.reload(wait_until="networkidle", timeout=RELOAD_TIMEOUT * 1000)
        except PWError as exc:
            logger.debug("Reload failed for %s: %s", self._url, exc)

    async def read_json(self) -> Any:
        """Return the JSON payload of the page, or ``None`` if there is none.

        The intercepted network body is preferred; the rendered body text is
        the fallback.
        """
        if self._response is not None:
            try:
                text = await self._response.text()
                logger.debug("Raw response: %s...", text[:100])
                return json.loads(text)
            except (PWError, ValueError) as exc:
                logger.debug("Intercepted body for %s is not JSON: %s", self._url, exc)
        try:
            text = await self.page.inner_text("body")
        except PWError as exc:
            logger.debug("Could not read page body for %s: %s", self._url, exc)
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None
