"""Loading-completion strategies and the composite race that combines them."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from playwright.async_api import Page

from screenshot_tester.models.config import CaptureConfig

logger = logging.getLogger(__name__)


class LoadingStrategy(ABC):
    """One rule for deciding that a page has finished loading.

    ``detect`` never raises: a failed or timed-out wait is reported as False.
    """

    name: str = "strategy"
    is_fallback: bool = False

    @abstractmethod
    async def detect(self, page: Page) -> bool:
        ...


class DOMReadyStrategy(LoadingStrategy):
    name = "domReady"

    async def detect(self, page: Page) -> bool:
        try:
            await page.wait_for_load_state("domcontentloaded")
        except Exception as e:
            logger.debug("DOM ready wait failed: %s", e)
            return False
        logger.info("DOM content loaded")
        return True


class NetworkIdleStrategy(LoadingStrategy):
    name = "networkIdle"

    def __init__(self, timeout: int = 2000):
        self.timeout = timeout

    async def detect(self, page: Page) -> bool:
        try:
            await page.wait_for_load_state("networkidle", timeout=self.timeout)
        except Exception as e:
            logger.debug("Network did not go idle within %dms: %s", self.timeout, e)
            return False
        logger.info("Network idle detected")
        return True


class ElementPresentStrategy(LoadingStrategy):
    name = "elementPresent"

    def __init__(self, selector: str, timeout: int = 5000):
        self.selector = selector
        self.timeout = timeout

    async def detect(self, page: Page) -> bool:
        try:
            await page.wait_for_selector(self.selector, timeout=self.timeout)
        except Exception:
            logger.warning("Element not found: %s", self.selector)
            return False
        logger.info("Element found: %s", self.selector)
        return True


class TimeoutStrategy(LoadingStrategy):
    """Reports completion after a fixed delay; guarantees the race terminates."""

    name = "timeout"
    is_fallback = True

    def __init__(self, duration: int):
        self.duration = duration

    async def detect(self, page: Page) -> bool:
        await asyncio.sleep(self.duration / 1000)
        logger.info("Timeout reached: %dms", self.duration)
        return True


class CompositeStrategy(LoadingStrategy):
    """Runs strategies concurrently; the first one to return True wins.

    The winner is kept in ``winner`` so callers can tell a real detection from
    the fallback timeout. Remaining strategies are cancelled once one succeeds.
    """

    name = "composite"

    def __init__(self, strategies: list[LoadingStrategy]):
        self.strategies = strategies
        self.winner: LoadingStrategy | None = None

    async def detect(self, page: Page) -> bool:
        self.winner = None
        tasks = {
            asyncio.ensure_future(strategy.detect(page)): strategy
            for strategy in self.strategies
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                # Several may finish in the same tick; keep list order among them
                for task in sorted(done, key=lambda t: self.strategies.index(tasks[t])):
                    if not task.cancelled() and task.exception() is None and task.result():
                        self.winner = tasks[task]
                        logger.info("Loading complete via: %s", self.winner.name)
                        return True
            return False
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)


class LoadingDetector:
    @staticmethod
    def create_default_strategy() -> CompositeStrategy:
        return CompositeStrategy([
            NetworkIdleStrategy(2000),
            TimeoutStrategy(10000),
        ])

    @staticmethod
    def create_from_config(config: CaptureConfig) -> CompositeStrategy:
        """Selector wait (if configured), network idle, then the duration backstop."""
        strategies: list[LoadingStrategy] = []
        if config.wait_for:
            strategies.append(ElementPresentStrategy(config.wait_for))
        strategies.append(NetworkIdleStrategy())
        strategies.append(TimeoutStrategy(config.duration))
        return CompositeStrategy(strategies)
