from __future__ import annotations

from sitebot.core.config import HOSTING_PROVIDER
from sitebot.hosting.base import HostingProvider
from sitebot.hosting.mock_provider import MockHostingProvider
from sitebot.hosting.vercel_provider import VercelProvider


def get_hosting_provider(provider: str | None = None) -> HostingProvider:
    selected = (provider or HOSTING_PROVIDER or "mock").strip().lower()
    if selected == "vercel":
        return VercelProvider()
    return MockHostingProvider()
