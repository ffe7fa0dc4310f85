from __future__ import annotations

from typing import Protocol


class ScreenshotProvider(Protocol):
    name: str

    def capture_screenshot(self, url: str) -> bytes:
        ...
