from __future__ import annotations

import logging

import httpx

from sitebot.core.config import SCREENSHOT_API_KEY, SCREENSHOT_API_URL, SCREENSHOT_TIMEOUT_SECONDS
from sitebot.core.errors import TerminalProviderError, TransientProviderError

logger = logging.getLogger(__name__)

VIEWPORT_WIDTH = 1200
VIEWPORT_HEIGHT = 630


class HttpScreenshotProvider:
    """Captura via API HTTP de screenshots (JPEG 1200x630, tamanho de preview)."""

    name = "http"

    def __init__(
        self,
        *,
        api_url: str = SCREENSHOT_API_URL,
        api_key: str = SCREENSHOT_API_KEY,
        timeout: float = SCREENSHOT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def capture_screenshot(self, url: str) -> bytes:
        if not self.api_url:
            raise TerminalProviderError("SCREENSHOT_API_URL não configurado", provider=self.name)

        params = {
            "url": url,
            "width": VIEWPORT_WIDTH,
            "height": VIEWPORT_HEIGHT,
            "format": "jpeg",
        }
        if self.api_key:
            params["access_key"] = self.api_key

        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=True, transport=self._transport) as client:
                response = client.get(self.api_url, params=params)
        except httpx.TimeoutException as exc:
            raise TransientProviderError("timeout ao capturar screenshot", provider=self.name, timeout=True) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"falha de rede no screenshot: {exc}", provider=self.name) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(f"screenshot status {response.status_code}", provider=self.name)
        if response.status_code >= 400:
            raise TerminalProviderError(
                f"screenshot status {response.status_code}: {response.text[:200]}", provider=self.name
            )

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/") or not response.content:
            raise TerminalProviderError(
                f"screenshot retornou conteúdo inesperado ({content_type or 'sem content-type'})",
                provider=self.name,
            )
        logger.info("Screenshot capturado: %s (%s bytes)", url, len(response.content))
        return response.content
