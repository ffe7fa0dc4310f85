from __future__ import annotations

# JPEG mínimo (SOI + EOI); suficiente para testes e dev
_FAKE_JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16 + b"\xff\xd9"


class MockScreenshotProvider:
    name = "mock"

    def __init__(self) -> None:
        self.captured: list[str] = []

    def capture_screenshot(self, url: str) -> bytes:
        self.captured.append(url)
        return _FAKE_JPEG
