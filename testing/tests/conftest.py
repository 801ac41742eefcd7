#!/usr/bin/env python3
"""
Shared fixtures and Playwright doubles for the ingestion core tests.

No real browser or network is used: the pool gets a FakeBrowser through
browser_factory, pages serve canned responses and content.
"""

import random
import sys
from pathlib import Path

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from playwright.async_api import Error as PlaywrightError

from sportscrape.db.sqlite_repository import SqliteRepository


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int = 200, headers=None):
        self.status = status
        self.headers = headers or {}


class FakePage:
    def __init__(self, context, content: str = "<html><body>fixtures</body></html>",
                 status: int = 200, headers=None, goto_error: bool = False):
        self.context = context
        self.url = "about:blank"
        self._content = content
        self.status = status
        self.headers = headers or {}
        self.goto_error = goto_error
        self.closed = False
        self.visited = []

    async def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error:
            raise PlaywrightError("net::ERR_CONNECTION_RESET")
        self.url = url
        self.visited.append(url)
        return FakeResponse(self.status, self.headers)

    async def content(self):
        return self._content

    async def wait_for_load_state(self, state=None, timeout=None):
        return None

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, browser, **kwargs):
        self.browser = browser
        self.kwargs = kwargs
        self.init_scripts = []
        self.pages = []
        self.closed = False
        self.cookie_jar = []

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def new_page(self):
        page = FakePage(self, **self.browser.page_options)
        self.pages.append(page)
        return page

    async def cookies(self):
        return list(self.cookie_jar)

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, **page_options):
        self.page_options = page_options
        self.contexts = []
        self.closed = False

    async def new_context(self, **kwargs):
        context = FakeContext(self, **kwargs)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


def browser_factory_for(browser: FakeBrowser):
    async def factory():
        return browser
    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def repository(clock):
    repo = SqliteRepository(":memory:", clock=clock)
    yield repo
    repo.close()
