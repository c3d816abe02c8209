"""Challenge-resilient JSON fetching.

A fetch walks an explicit state machine with a fixed attempt budget::

    NAVIGATING -> AWAITING_CHALLENGE -> AWAITING_TOKEN -> EXTRACTING_CLEARANCE -> DONE
    any step -> RETRYING -> NAVIGATING   (attempts remain)
    any step -> FAILED                   (budget spent, or a terminal status)

Status codes decide the retry cost: a block (403) is retried until the last
attempt, a rate limit (429) fails at once, a not-found (404) ends the fetch
with no payload. Waits for the challenge banner and the captcha token are
bounded; a missing clearance cookie triggers a reload, a cooldown and the
next attempt.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from leakguard.browser import (
    NAVIGATION_TIMEOUT,
    RELOAD_TIMEOUT,
    PagePool,
    PlaywrightPageDriver,
    PlaywrightSlotFactory,
)
from leakguard.errors import (
    ChallengeBlocked,
    ClearanceUnobtainable,
    NavigationFailed,
    PayloadUnavailable,
    RateLimited,
)

logger = logging.getLogger(__name__)

BLOCK_STATUSES = frozenset({403})
RATE_LIMIT_STATUSES = frozenset({429})
NOT_FOUND_STATUSES = frozenset({404})


class ClearanceState(enum.Enum):
    NAVIGATING = "navigating"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_TOKEN = "awaiting_token"
    EXTRACTING_CLEARANCE = "extracting_clearance"
    DONE = "done"
    RETRYING = "retrying"
    FAILED = "failed"


class PageDriver(Protocol):
    """The page operations the protocol needs; one method per transition."""

    async def goto(self, url: str) -> Optional[int]: ...

    async def wait_challenge_cleared(self, timeout: float) -> bool: ...

    async def has_captcha(self) -> bool: ...

    async def wait_captcha_token(self, timeout: float) -> Optional[str]: ...

    async def clearance_cookie(self) -> Optional[str]: ...

    async def attach_clearance(self, value: str) -> None: ...

    async def reload(self) -> None: ...

    async def read_json(self) -> Any: ...

    def detach(self) -> None: ...


class _AttemptFailed(Exception):
    """One attempt failed in a way that a fresh attempt may fix."""


class ClearanceProtocol:
    """Acquire clearance for *url* and capture its JSON payload."""

    def __init__(
        self,
        driver: PageDriver,
        url: str,
        *,
        max_attempts: int = 3,
        challenge_timeout: float = 30.0,
        token_timeout: float = 15.0,
        cooldown: float = 5.0,
        clearance_required: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.driver = driver
        self.url = url
        self.max_attempts = max_attempts
        self.challenge_timeout = challenge_timeout
        self.token_timeout = token_timeout
        self.cooldown = cooldown
        self.clearance_required = clearance_required
        self._sleep = sleep
        self.state = ClearanceState.NAVIGATING
        self.history: List[ClearanceState] = []
        self.attempt = 0
        self.clearance: Optional[str] = None

    def _enter(self, state: ClearanceState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("%s [attempt %d/%d] -> %s",
                     self.url, self.attempt, self.max_attempts, state.value)

    async def run(self) -> Any:
        """Run the protocol to completion.

        Returns:
            The decoded JSON payload, or ``None`` when the source reported
            not-found.

        Raises:
            RateLimited: on a rate-limit status, without retrying.
            ChallengeBlocked: when the last attempt is still blocked.
            ClearanceUnobtainable: when no attempt yields clearance.
            PayloadUnavailable: when clearance succeeded but no JSON was found.
        """
        for attempt in range(1, self.max_attempts + 1):
            self.attempt = attempt
            last = attempt == self.max_attempts
            try:
                return await self._attempt(last)
            except _AttemptFailed as exc:
                if last:
                    self._enter(ClearanceState.FAILED)
                    raise ClearanceUnobtainable(
                        self.url,
                        f"failed to obtain clearance for {self.url} after "
                        f"{self.max_attempts} attempts: {exc}",
                    ) from exc
                logger.warning("Attempt %d failed for %s: %s", attempt, self.url, exc)
                self._enter(ClearanceState.RETRYING)
                await self.driver.reload()
                await self._sleep(self.cooldown)
        raise ClearanceUnobtainable(self.url)

    async def _attempt(self, last: bool) -> Any:
        self._enter(ClearanceState.NAVIGATING)
        try:
            status = await self.driver.goto(self.url)
        except NavigationFailed as exc:
            raise _AttemptFailed(str(exc)) from exc

        if status in RATE_LIMIT_STATUSES:
            self._enter(ClearanceState.FAILED)
            raise RateLimited(self.url, f"too many requests to {self.url}")
        if status in NOT_FOUND_STATUSES:
            logger.debug("Not found at %s", self.url)
            self._enter(ClearanceState.DONE)
            return None
        blocked = status in BLOCK_STATUSES
        if blocked:
            logger.warning("Received %d on attempt %d for %s", status, self.attempt, self.url)
            if last:
                self._enter(ClearanceState.FAILED)
                raise ChallengeBlocked(
                    self.url,
                    f"access denied to {self.url} after {self.max_attempts} attempts",
                )

        self._enter(ClearanceState.AWAITING_CHALLENGE)
        if not await self.driver.wait_challenge_cleared(self.challenge_timeout):
            logger.warning("Challenge not completed on attempt %d for %s", self.attempt, self.url)

        self._enter(ClearanceState.AWAITING_TOKEN)
        if await self.driver.has_captcha():
            logger.debug("Captcha widget detected, waiting for token...")
            token = await self.driver.wait_captcha_token(self.token_timeout)
            if not token:
                raise _AttemptFailed("captcha token was not issued")
            logger.debug("Captcha token obtained: %s...", token[:8])

        self._enter(ClearanceState.EXTRACTING_CLEARANCE)
        clearance = await self.driver.clearance_cookie()
        if clearance:
            logger.debug("Clearance obtained: %s...", clearance[:8])
            await self.driver.attach_clearance(clearance)
            self.clearance = clearance
        elif self.clearance_required or blocked:
            raise _AttemptFailed("clearance cookie not found")

        self._enter(ClearanceState.DONE)
        payload = await self.driver.read_json()
        if payload is None:
            self._enter(ClearanceState.FAILED)
            raise PayloadUnavailable(self.url, f"failed to retrieve JSON data from {self.url}")
        return payload


class ResilientFetcher:
    """Fetch JSON from challenge-protected URLs through a pool of browser slots."""

    def __init__(
        self,
        pool: PagePool,
        *,
        driver_factory: Callable[[Any], PageDriver] = PlaywrightPageDriver,
        max_attempts: int = 3,
        clearance_required: bool = True,
        challenge_timeout: float = 30.0,
        token_timeout: float = 15.0,
        cooldown: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.pool = pool
        self.driver_factory = driver_factory
        self.max_attempts = max_attempts
        self.clearance_required = clearance_required
        self.challenge_timeout = challenge_timeout
        self.token_timeout = token_timeout
        self.cooldown = cooldown
        self._sleep = sleep

    @classmethod
    def from_config(cls, cfg: dict) -> "ResilientFetcher":
        factory = PlaywrightSlotFactory(
            headless=cfg.get("browser_headless", True),
            executable_path=cfg.get("browser_executable_path"),
        )
        pool = PagePool(factory, size=cfg.get("browser_pool_size", 5))
        return cls(
            pool,
            max_attempts=cfg.get("fetch_max_attempts", 3),
            clearance_required=cfg.get("clearance_required", True),
        )

    @property
    def budget(self) -> float:
        """Worst-case seconds one :meth:`fetch_json` call can take.

        Every attempt may spend a full navigation plus both waits; each
        retry adds a reload and the cooldown.
        """
        attempt = NAVIGATION_TIMEOUT + self.challenge_timeout + self.token_timeout
        retries = self.max_attempts - 1
        return self.max_attempts * attempt + retries * (RELOAD_TIMEOUT + self.cooldown)

    async def start(self) -> None:
        await self.pool.start()

    async def close(self) -> None:
        await self.pool.close()

    async def fetch_json(self, url: str, max_attempts: Optional[int] = None) -> Any:
        """Fetch *url* and return its decoded JSON, or ``None`` on not-found."""
        async with self.pool.slot() as slot:
            driver = self.driver_factory(slot)
            try:
                logger.debug("Navigating to %s", url)
                protocol = ClearanceProtocol(
                    driver,
                    url,
                    max_attempts=max_attempts or self.max_attempts,
                    challenge_timeout=self.challenge_timeout,
                    token_timeout=self.token_timeout,
                    cooldown=self.cooldown,
                    clearance_required=self.clearance_required,
                    sleep=self._sleep,
                )
                return await protocol.run()
            finally:
                driver.detach()
