"""Browser controller: owns one headless Chromium browser, context and page."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from screenshot_tester.models.config import ThrottlingConfig, ViewportConfig

logger = logging.getLogger(__name__)


class BrowserError(RuntimeError):
    """Base class for browser session failures."""


class BrowserNotLaunchedError(BrowserError):
    def __init__(self) -> None:
        super().__init__("Browser not launched. Call launch() first.")


class NavigationError(BrowserError):
    """Target URL could not be loaded."""


class BrowserController:
    """Thin async wrapper over a Playwright browser session.

    One controller serves exactly one capture session: ``launch()`` once, use
    the page, then ``close()``. ``close()`` is idempotent and never raises.
    """

    def __init__(
        self,
        viewport: ViewportConfig | None = None,
        headless: bool = True,
        user_agent: Optional[str] = None,
        device_name: Optional[str] = None,
        throttling: Optional[ThrottlingConfig] = None,
    ):
        self.viewport = viewport or ViewportConfig()
        self.headless = headless
        self.user_agent = user_agent
        self.device_name = device_name
        self.throttling = throttling
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserNotLaunchedError()
        return self._page

    @property
    def is_launched(self) -> bool:
        return self._page is not None

    async def launch(self) -> None:
        """Start Playwright, launch Chromium and open a page."""
        logger.info("Launching Chromium (headless=%s)", self.headless)
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=["--disable-blink-features=AutomationControlled"],
        )

        context_kwargs: dict = {
            "viewport": self.viewport.model_dump(),
        }
        if self.user_agent:
            context_kwargs["user_agent"] = self.user_agent
        if self.device_name:
            descriptor = self._playwright.devices.get(self.device_name)
            if descriptor:
                descriptor = dict(descriptor)
                descriptor.pop("default_browser_type", None)
                context_kwargs.update(descriptor)
                logger.info("Emulating device: %s", self.device_name)
            else:
                logger.warning("Unknown device: %s", self.device_name)

        self._context = await self._browser.new_context(**context_kwargs)
        self._page = await self._context.new_page()

        if self.throttling:
            await self._apply_throttling()

        logger.info("Browser launched")

    async def navigate(self, url: str) -> None:
        """Navigate and wait for DOMContentLoaded."""
        page = self.page
        logger.info("Navigating to %s", url)
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except Exception as e:
            logger.error("Navigation failed: %s", e)
            raise NavigationError(f"Failed to navigate to {url}: {e}") from e
        logger.debug("Navigation to %s complete", url)

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        await self.page.screenshot(path=path, full_page=full_page)
        logger.debug("Screenshot saved to %s", path)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def wait_for_load_state(self, state: str = "load", timeout: float | None = None) -> None:
        await self.page.wait_for_load_state(state, timeout=timeout)

    async def wait_for_selector(self, selector: str, timeout: float = 30000) -> None:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout)
        except Exception:
            logger.warning("Element not found within %dms: %s", timeout, selector)
            raise
        logger.debug("Element found: %s", selector)

    def on(self, event: str, handler: Callable) -> None:
        """Subscribe to a page-level event (``pageerror``, ``crash``, ...)."""
        self.page.on(event, handler)

    async def close(self) -> None:
        """Release page, context, browser and driver. Safe to call repeatedly."""
        for name, resource in (
            ("page", self._page),
            ("context", self._context),
            ("browser", self._browser),
        ):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.debug("Error closing %s: %s", name, e)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Error stopping Playwright: %s", e)

        was_open = self._browser is not None
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        if was_open:
            logger.info("Browser closed")

    async def _apply_throttling(self) -> None:
        """Emulate a slower network via the Chrome DevTools protocol."""
        t = self.throttling
        try:
            client = await self._context.new_cdp_session(self._page)
            await client.send("Network.emulateNetworkConditions", {
                "offline": False,
                "downloadThroughput": t.download_speed / 8,  # bytes/sec
                "uploadThroughput": t.upload_speed / 8,
                "latency": t.latency,
            })
            logger.info(
                "Applied network throttling: %.1fMbps down, %.0fKbps up, %.0fms latency",
                t.download_speed / 1024 / 1024, t.upload_speed / 1024, t.latency,
            )
        except Exception as e:
            logger.warning("Failed to apply throttling: %s", e)


async def available_devices() -> list[str]:
    """Names of Playwright's built-in device descriptors."""
    async with async_playwright() as p:
        return sorted(p.devices.keys())
