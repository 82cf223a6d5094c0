import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PWError,
    Page,
    Playwright,
    TimeoutError as PWTimeout,
    async_playwright,
)
from rich.console import Console
from rich.markup import escape


console = Console()


class ScrapeError(Exception):
    """Base class for failures while driving the browser."""


class NavigationError(ScrapeError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url


class ReadinessTimeoutError(ScrapeError):
    """Page images never reached a loaded state within the readiness timeout."""


class ExtractionError(ScrapeError):
    """A snapshot script threw inside the page context."""


def _build_playwright_proxy(proxy_url: str) -> Optional[Dict[str, Any]]:
    if not proxy_url:
        return None
    parsed = urlparse(proxy_url)
    if not parsed.scheme or not parsed.hostname or not parsed.port:
        console.log(f"Ignoring malformed PROXY_URL: {proxy_url}")
        return None
    proxy: Dict[str, Any] = {
        "server": f"{parsed.scheme}://{parsed.hostname}:{parsed.port}",
    }
    if parsed.username:
        proxy["username"] = parsed.username
    if parsed.password:
        proxy["password"] = parsed.password
    return proxy


async def jitter_sleep(min_ms: int, max_ms: int) -> None:
    await asyncio.sleep(random.uniform(min_ms / 1000.0, max_ms / 1000.0))


BrowserLauncher = Callable[[], Awaitable[Browser]]


class PageSession:
    """One browser and one page, driven strictly sequentially.

    After `max_ops_before_recycle` completed operations the browser is closed
    and relaunched to keep memory and handle counts bounded on long runs.
    Callers keep using the same session object across recycles.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        user_agent: str = "",
        proxy_url: str = "",
        nav_timeout_ms: int = 60000,
        max_ops_before_recycle: int = 5,
        jitter_min_ms: int = 0,
        jitter_max_ms: int = 0,
        launcher: Optional[BrowserLauncher] = None,
    ) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self.proxy_url = proxy_url
        self.nav_timeout_ms = nav_timeout_ms
        self.max_ops_before_recycle = max_ops_before_recycle
        self.jitter_min_ms = jitter_min_ms
        self.jitter_max_ms = jitter_max_ms
        self._launcher = launcher
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.ops_since_recycle = 0

    async def __aenter__(self) -> "PageSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        if self._launcher is None and self._playwright is None:
            self._playwright = await async_playwright().start()
        try:
            await self._open()
        except Exception:
            await self.close()
            raise

    async def close(self) -> None:
        await self._discard()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _launch(self) -> Browser:
        if self._launcher is not None:
            return await self._launcher()
        launch_kwargs: Dict[str, Any] = {
            "headless": self.headless,
            "args": ["--disable-blink-features=AutomationControlled"],
        }
        proxy_conf = _build_playwright_proxy(self.proxy_url)
        if proxy_conf:
            launch_kwargs["proxy"] = proxy_conf
        return await self._playwright.chromium.launch(**launch_kwargs)

    async def _open(self) -> None:
        self.browser = await self._launch()
        context_args: Dict[str, Any] = {}
        if self.user_agent:
            context_args["user_agent"] = self.user_agent
        self.context = await self.browser.new_context(**context_args)
        self.page = await self.context.new_page()
        self.ops_since_recycle = 0

    async def _discard(self) -> None:
        # A crashed browser can refuse to close; the handles are dropped regardless
        for handle in (self.context, self.browser):
            if handle is None:
                continue
            try:
                await handle.close()
            except PWError as e:
                console.log(f"Ignoring close error: {escape(str(e))}")
        self.browser = None
        self.context = None
        self.page = None

    def _require_page(self) -> Page:
        if self.page is None:
            raise RuntimeError("PageSession is not started")
        return self.page

    async def navigate(self, url: str) -> Page:
        """Load `url` and wait for network idle. Raises `NavigationError`."""
        page = self._require_page()
        try:
            await page.goto(url, wait_until="networkidle", timeout=self.nav_timeout_ms)
        except PWError as e:
            raise NavigationError(url, str(e)) from e
        if self.jitter_max_ms > 0:
            await jitter_sleep(self.jitter_min_ms, self.jitter_max_ms)
        return page

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a snapshot script in page context and return its plain result."""
        page = self._require_page()
        try:
            return await page.evaluate(script, arg)
        except PWError as e:
            raise ExtractionError(f"Evaluation failed on {page.url}: {e}") from e

    async def wait_for(self, predicate: str, timeout_ms: int) -> None:
        page = self._require_page()
        try:
            await page.wait_for_function(predicate, timeout=timeout_ms)
        except PWTimeout as e:
            raise ReadinessTimeoutError(f"Page {page.url} not ready after {timeout_ms}ms") from e
        except PWError as e:
            raise ExtractionError(f"Readiness check failed on {page.url}: {e}") from e

    async def recycle_if_due(self) -> bool:
        """Count one completed operation; relaunch the browser when the budget is used up."""
        self.ops_since_recycle += 1
        if self.max_ops_before_recycle <= 0 or self.ops_since_recycle < self.max_ops_before_recycle:
            return False
        console.log("Restarting browser for optimization...")
        await self._discard()
        await self._open()
        return True
