from __future__ import annotations

from sitebot.ai.base import SiteGenerator
from sitebot.ai.mock_provider import MockSiteGenerator
from sitebot.ai.openrouter_provider import OpenRouterProvider
from sitebot.core.config import AI_PROVIDER


def get_site_generator(provider: str | None = None) -> SiteGenerator:
    selected = (provider or AI_PROVIDER or "mock").strip().lower()
    if selected == "openrouter":
        return OpenRouterProvider()
    return MockSiteGenerator()
