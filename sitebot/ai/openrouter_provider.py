from __future__ import annotations

import json
import logging
import re

import httpx
from pydantic import ValidationError

from sitebot.ai.prompts import build_messages
from sitebot.ai.schema import ChatCompletion
from sitebot.core.config import BASE_URL, OPENROUTER_API_KEY, OPENROUTER_API_URL, OPENROUTER_MODEL
from sitebot.core.errors import TerminalProviderError, TransientProviderError

logger = logging.getLogger(__name__)

_FENCE_START = re.compile(r"^```(?:html)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")


def strip_code_fences(content: str) -> str:
    content = _FENCE_START.sub("", content.strip())
    content = _FENCE_END.sub("", content)
    return content.strip()


class OpenRouterProvider:
    name = "openrouter"

    def __init__(
        self,
        *,
        api_key: str = OPENROUTER_API_KEY,
        api_url: str = OPENROUTER_API_URL,
        model: str = OPENROUTER_MODEL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self._transport = transport

    def generate_site_markup(self, prompt: str, *, timeout: float) -> str:
        if not self.api_key:
            raise TerminalProviderError("OPENROUTER_API_KEY não configurada", provider=self.name)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": BASE_URL,
            "X-Title": "Site Generator Pro",
            "Content-Type": "application/json",
        }
        body = {"model": self.model, "messages": build_messages(prompt)}

        try:
            with httpx.Client(timeout=timeout, transport=self._transport) as client:
                response = client.post(self.api_url, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            raise TransientProviderError(
                f"timeout na geração após {timeout:.0f}s", provider=self.name, timeout=True
            ) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"falha de rede na geração: {exc}", provider=self.name) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"OpenRouter status {response.status_code}: {response.text[:200]}", provider=self.name
            )
        if response.status_code >= 400:
            raise TerminalProviderError(
                f"OpenRouter status {response.status_code}: {response.text[:200]}", provider=self.name
            )

        try:
            completion = ChatCompletion.model_validate(response.json())
        except (json.JSONDecodeError, ValidationError) as exc:
            raise TerminalProviderError(f"Formato inesperado da OpenRouter: {exc}", provider=self.name) from exc

        markup = strip_code_fences(completion.choices[0].message.content)
        if not markup:
            raise TerminalProviderError("OpenRouter devolveu conteúdo vazio", provider=self.name)

        logger.info("Markup gerado: %s caracteres", len(markup))
        return markup
