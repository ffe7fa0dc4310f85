from __future__ import annotations

from sitebot.core.config import SCREENSHOT_PROVIDER
from sitebot.screenshots.base import ScreenshotProvider
from sitebot.screenshots.http_provider import HttpScreenshotProvider
from sitebot.screenshots.mock_provider import MockScreenshotProvider


def get_screenshot_provider(provider: str | None = None) -> ScreenshotProvider:
    selected = (provider or SCREENSHOT_PROVIDER or "mock").strip().lower()
    if selected == "http":
        return HttpScreenshotProvider()
    return MockScreenshotProvider()
