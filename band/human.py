"""
Human emulation for BAND browser sessions.

Timing variance and keystroke pacing, plus a per-account
fingerprint so the same account always presents the same browser.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page


# Common desktop resolutions
COMMON_VIEWPORTS = [
    (1920, 1080),
    (1366, 768),
    (1536, 864),
    (1440, 900),
    (1280, 720),
    (1680, 1050),
]

# BAND members are overwhelmingly in Korea
DEFAULT_TIMEZONE = 'Asia/Seoul'
DEFAULT_LOCALE = 'ko-KR'


@dataclass
class HumanSession:
    """
    Browser fingerprint and action clock for one account.

    Seed it with the account id so repeated runs reuse the same viewport.
    """
    seed: str | None = None
    viewport: tuple[int, int] | None = None
    timezone: str = DEFAULT_TIMEZONE
    locale: str = DEFAULT_LOCALE
    device_scale_factor: float | None = None
    user_agent: str | None = None

    last_action_time: float = field(default_factory=time.time)

    def __post_init__(self):
        rng = random.Random(self.seed) if self.seed is not None else random
        if self.viewport is None:
            self.viewport = rng.choice(COMMON_VIEWPORTS)
        if self.device_scale_factor is None:
            self.device_scale_factor = rng.choice([1.0, 1.25, 1.5])

    def apply_to_context_options(self) -> dict:
        """Return options dict for Playwright context creation."""
        options = {
            'viewport': {'width': self.viewport[0], 'height': self.viewport[1]},
            'timezone_id': self.timezone,
            'locale': self.locale,
            'device_scale_factor': self.device_scale_factor,
        }
        if self.user_agent:
            options['user_agent'] = self.user_agent
        return options

    def record_action(self):
        self.last_action_time = time.time()


# =============================================================================
# TIMING FUNCTIONS
# =============================================================================

def delay_in_range(delay_range: tuple[float, float]) -> float:
    low, high = delay_range
    return random.uniform(low, high) if high > low else max(0.0, low)


def typing_delay(char: str) -> float:
    """Delay before the next keystroke (~120ms average)."""
    base = random.gauss(0.12, 0.04)

    # Slower after punctuation or space
    if char in ' .,;:!?@':
        base += random.uniform(0.1, 0.3)

    # Occasional thinking pause
    if random.random() < 0.02:
        base += random.uniform(0.5, 1.5)

    return max(0.03, base)


# =============================================================================
# PAGE ACTIONS
# =============================================================================

async def pause(seconds: float) -> None:
    if seconds > 0:
        await asyncio.sleep(seconds)


async def human_type(
    page: 'Page',
    selector: str,
    text: str,
    session: HumanSession | None = None,
) -> None:
    """Click into ``selector`` and type ``text`` one key at a time."""
    await page.click(selector)
    await asyncio.sleep(random.uniform(0.1, 0.3))

    for char in text:
        await page.keyboard.type(char)
        await asyncio.sleep(typing_delay(char))

    if session:
        session.record_action()
