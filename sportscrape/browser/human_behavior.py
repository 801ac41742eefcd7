"""Human-like mouse and scroll simulation for Playwright pages."""

import asyncio
import logging
import random
from typing import List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

_DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}


async def jitter_sleep(min_seconds: float = 0.5, max_seconds: float = 1.5, rng: Optional[random.Random] = None):
    """Sleep for a random amount of time between min and max seconds."""
    await asyncio.sleep((rng or random).uniform(min_seconds, max_seconds))


def bezier_path(start: Point, end: Point, steps: int = 20, rng: Optional[random.Random] = None) -> List[Point]:
    """Cubic Bezier curve from start to end with two jittered control points."""
    rng = rng or random
    (x0, y0), (x3, y3) = start, end
    x1 = x0 + (x3 - x0) * 0.25 + rng.randint(-50, 50)
    y1 = y0 + (y3 - y0) * 0.25 + rng.randint(-30, 30)
    x2 = x0 + (x3 - x0) * 0.75 + rng.randint(-50, 50)
    y2 = y0 + (y3 - y0) * 0.75 + rng.randint(-30, 30)

    path = []
    for i in range(steps + 1):
        t = i / steps
        a, b, c, d = (1 - t) ** 3, 3 * (1 - t) ** 2 * t, 3 * (1 - t) * t ** 2, t ** 3
        path.append((round(a * x0 + b * x1 + c * x2 + d * x3), round(a * y0 + b * y1 + c * y2 + d * y3)))
    return path


async def move_mouse_naturally(page, start: Point, end: Point, rng: Optional[random.Random] = None):
    rng = rng or random
    for x, y in bezier_path(start, end, rng.randint(15, 25), rng):
        await page.mouse.move(x, y)
        await asyncio.sleep(rng.randint(5, 20) / 1000)


async def human_scroll(page, rng: Optional[random.Random] = None):
    """Scroll the page a few times by random amounts, mostly down."""
    rng = rng or random
    for _ in range(rng.randint(1, 3)):
        amount = rng.randint(100, 400)
        direction = 1 if rng.random() > 0.3 else -1
        await page.evaluate(
            "([amount, dir]) => window.scrollBy({top: amount * dir, behavior: 'smooth'})",
            [amount, direction],
        )
        await jitter_sleep(0.5, 1.5, rng)


async def human_hover(page, rng: Optional[random.Random] = None):
    """Hover over one or two random links/buttons without clicking."""
    rng = rng or random
    try:
        elements = await page.query_selector_all('a, button, [role="button"]')
    except PlaywrightError as e:
        logger.debug(f"Element hover simulation failed: {e}")
        return
    if not elements:
        return

    viewport = page.viewport_size or _DEFAULT_VIEWPORT
    center = (viewport["width"] / 2, viewport["height"] / 2)
    for element in rng.sample(elements, min(rng.randint(1, 2), len(elements))):
        try:
            box = await element.bounding_box()
            if not box or box["width"] <= 0 or box["height"] <= 0:
                continue
            target = (
                box["x"] + box["width"] / 2 + rng.randint(-10, 10),
                box["y"] + box["height"] / 2 + rng.randint(-10, 10),
            )
            await move_mouse_naturally(page, center, target, rng)
            await jitter_sleep(0.3, 0.8, rng)
        except PlaywrightError:
            # Element detached
            continue


async def human_idle_movement(page, rng: Optional[random.Random] = None):
    rng = rng or random
    viewport = page.viewport_size or _DEFAULT_VIEWPORT
    width, height = viewport["width"], viewport["height"]
    start = (rng.randint(100, width - 100), rng.randint(100, height - 100))
    end = (
        max(50, min(width - 50, start[0] + rng.randint(-200, 200))),
        max(50, min(height - 50, start[1] + rng.randint(-100, 100))),
    )
    await move_mouse_naturally(page, start, end, rng)


async def simulate_human_behavior(page, rng: Optional[random.Random] = None):
    """Run one or two of idle movement / scrolling / hovering in random order."""
    rng = rng or random
    actions = [human_idle_movement, human_scroll, human_hover]
    rng.shuffle(actions)
    for action in actions[:rng.randint(1, 2)]:
        await action(page, rng)
        await jitter_sleep(0.2, 0.5, rng)
