from __future__ import annotations

from typing import Protocol


class SiteGenerator(Protocol):
    name: str

    def generate_site_markup(self, prompt: str, *, timeout: float) -> str:
        ...
