"""Browser automation collaborator: a narrow page interface over Playwright."""

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Protocol

from playwright.async_api import (
    Browser as PlaywrightBrowserHandle,
    BrowserContext,
    Page as PlaywrightPageHandle,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from config import BrowserConfig

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]

_SCROLL_INTO_VIEW_JS = """
({selectors, fallbackViewports}) => {
  for (const selector of selectors) {
    let element = null;
    try { element = document.querySelector(selector); } catch (e) { continue; }
    if (element) {
      element.scrollIntoView({block: 'center'});
      return selector;
    }
  }
  window.scrollTo(0, window.innerHeight * fallbackViewports);
  return null;
}
"""


class Page(Protocol):
    """Capabilities the pipeline needs from one browser tab."""

    url: str

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout: float = 30.0) -> None: ...

    async def wait_for_selector(self, selector: str, timeout: float) -> bool: ...

    async def wait_for_idle(self, timeout: float) -> bool: ...

    async def scroll_by(self, dy: float) -> None: ...

    async def scroll_to(self, y: float) -> None: ...

    async def scroll_to_fraction(self, fraction: float) -> None: ...

    async def scroll_into_view(self, selectors: list[str], fallback_viewports: float) -> str | None: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def content(self) -> str: ...

    async def inner_text(self) -> str: ...

    async def element_boxes(self, selector: str) -> list[dict | None]: ...

    async def screenshot_element(self, selector: str, index: int) -> bytes: ...

    async def close(self) -> None: ...


class Browser(Protocol):
    def page(self) -> AbstractAsyncContextManager[Page]:
        """Opens a page that is closed on every exit path."""
        ...


class PlaywrightPage:
    """Page implementation backed by a Playwright page."""

    def __init__(self, page: PlaywrightPageHandle):
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout: float = 30.0) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout * 1000)

    async def wait_for_selector(self, selector: str, timeout: float) -> bool:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout * 1000, state="attached")
            return True
        except PlaywrightTimeoutError:
            return False

    async def wait_for_idle(self, timeout: float) -> bool:
        try:
            await self._page.wait_for_load_state("networkidle", timeout=timeout * 1000)
            return True
        except PlaywrightTimeoutError:
            return False

    async def scroll_by(self, dy: float) -> None:
        await self._page.evaluate("dy => window.scrollBy(0, dy)", dy)

    async def scroll_to(self, y: float) -> None:
        await self._page.evaluate("y => window.scrollTo(0, y)", y)

    async def scroll_to_fraction(self, fraction: float) -> None:
        await self._page.evaluate("f => window.scrollTo(0, document.body.scrollHeight * f)", fraction)

    async def scroll_into_view(self, selectors: list[str], fallback_viewports: float) -> str | None:
        return await self._page.evaluate(
            _SCROLL_INTO_VIEW_JS,
            {"selectors": selectors, "fallbackViewports": fallback_viewports},
        )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self._page.evaluate(script)
        return await self._page.evaluate(script, arg)

    async def content(self) -> str:
        return await self._page.content()

    async def inner_text(self) -> str:
        return await self._page.evaluate("() => document.body ? document.body.innerText : ''")

    async def element_boxes(self, selector: str) -> list[dict | None]:
        handles = await self._page.query_selector_all(selector)
        return [await handle.bounding_box() for handle in handles]

    async def screenshot_element(self, selector: str, index: int) -> bytes:
        return await self._page.locator(selector).nth(index).screenshot()

    async def close(self) -> None:
        if not self._page.is_closed():
            await self._page.close()


class PlaywrightBrowser:
    """Headless Chromium with one shared context.

    Use as an async context manager; pages come from `page()`.
    """

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: PlaywrightBrowserHandle | None = None
        self._context: BrowserContext | None = None

    async def __aenter__(self) -> "PlaywrightBrowser":
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=self.config.user_agent,
                viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
                extra_http_headers=self.config.extra_headers,
            )
        except Exception:
            await self._shutdown()
            raise
        logger.debug("Browser started")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._shutdown()

    async def _shutdown(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    @asynccontextmanager
    async def page(self) -> AsyncIterator[PlaywrightPage]:
        if self._context is None:
            raise RuntimeError("Browser is not started")
        raw_page = await self._context.new_page()
        raw_page.set_default_timeout(self.config.navigation_timeout * 1000)
        page = PlaywrightPage(raw_page)
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Could not close page: {e}")
