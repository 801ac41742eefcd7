#!/usr/bin/env python3
"""
Tests for human-like mouse/scroll simulation against a recording page double.
"""

import asyncio
import random

import pytest

from sportscrape.browser import human_behavior
from sportscrape.browser.human_behavior import bezier_path, simulate_human_behavior


class _Mouse:
    def __init__(self):
        self.moves = []

    async def move(self, x, y):
        self.moves.append((x, y))


class _Element:
    async def bounding_box(self):
        return {"x": 200, "y": 150, "width": 80, "height": 20}


class _RecordingPage:
    viewport_size = {"width": 1366, "height": 768}

    def __init__(self):
        self.mouse = _Mouse()
        self.scripts = []

    async def evaluate(self, script, arg=None):
        self.scripts.append(arg)

    async def query_selector_all(self, selector):
        return [_Element(), _Element()]


@pytest.fixture
def no_sleep(monkeypatch):
    async def instant(_seconds):
        return None
    monkeypatch.setattr(human_behavior.asyncio, "sleep", instant)


def test_bezier_path_starts_and_ends_on_target():
    path = bezier_path((0, 0), (400, 300), steps=10, rng=random.Random(7))
    assert len(path) == 11
    assert path[0] == (0, 0)
    assert path[-1] == (400, 300)


def test_simulation_moves_or_scrolls(no_sleep):
    page = _RecordingPage()
    for seed in range(5):
        asyncio.run(simulate_human_behavior(page, random.Random(seed)))
    assert page.mouse.moves or page.scripts
    for x, y in page.mouse.moves:
        assert isinstance(x, int) and isinstance(y, int)
