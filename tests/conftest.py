"""Shared fakes standing in for the browser and the page session."""

from typing import Any, Dict, List, Optional, Set

import pytest

from extractors import AUTO_SCROLL_JS
from session import NavigationError, ReadinessTimeoutError


ORIGIN = "https://www.rigelmedical.com"


class FakeSession:
    """Serves canned snapshots per URL, mimicking `PageSession`'s interface."""

    def __init__(
        self,
        snapshots: Dict[str, Any],
        *,
        unreachable: Optional[Set[str]] = None,
        not_ready: Optional[Set[str]] = None,
    ) -> None:
        self.snapshots = snapshots
        self.unreachable = unreachable or set()
        self.not_ready = not_ready or set()
        self.url: Optional[str] = None
        self.visited: List[str] = []
        self.recycle_checks = 0
        self.entered = False
        self.exited = False

    async def __aenter__(self) -> "FakeSession":
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.exited = True

    async def navigate(self, url: str):
        if url in self.unreachable:
            raise NavigationError(url, "Timeout 60000ms exceeded")
        self.url = url
        self.visited.append(url)
        return self

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == AUTO_SCROLL_JS:
            return None
        return self.snapshots[self.url]

    async def wait_for(self, predicate: str, timeout_ms: int) -> None:
        if self.url in self.not_ready:
            raise ReadinessTimeoutError(f"Page {self.url} not ready after {timeout_ms}ms")

    async def recycle_if_due(self) -> bool:
        self.recycle_checks += 1
        return False


class FakePage:
    def __init__(self, browser_id: int) -> None:
        self.browser_id = browser_id
        self.url = "about:blank"
        self.goto_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.evaluate_result: Any = None
        self.gotos: List[Dict[str, Any]] = []

    async def goto(self, url: str, wait_until: str, timeout: int) -> None:
        self.gotos.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return self.evaluate_result

    async def wait_for_function(self, predicate: str, timeout: int) -> None:
        if self.wait_error is not None:
            raise self.wait_error


class FakeContext:
    def __init__(self, browser_id: int) -> None:
        self.browser_id = browser_id
        self.closed = False

    async def new_page(self) -> FakePage:
        return FakePage(self.browser_id)

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, browser_id: int) -> None:
        self.browser_id = browser_id
        self.closed = False
        self.context_args: Dict[str, Any] = {}

    async def new_context(self, **kwargs: Any) -> FakeContext:
        self.context_args = kwargs
        return FakeContext(self.browser_id)

    async def close(self) -> None:
        self.closed = True


class FakeLauncher:
    def __init__(self) -> None:
        self.browsers: List[FakeBrowser] = []

    async def __call__(self) -> FakeBrowser:
        browser = FakeBrowser(len(self.browsers) + 1)
        self.browsers.append(browser)
        return browser


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()
