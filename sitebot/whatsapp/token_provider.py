from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from sitebot.core.errors import TerminalProviderError, TransientProviderError

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    def get_token(self) -> str:
        ...

    def invalidate(self) -> None:
        ...


class TokenResponse(BaseModel):
    access_token: str = Field(min_length=1)
    token_type: str
    expires_in: int | None = Field(default=None, ge=0)


def parse_token_response(data: object) -> TokenResponse:
    try:
        return TokenResponse.model_validate(data)
    except ValidationError as exc:
        raise TerminalProviderError(
            "Resposta da API não possui o formato esperado para token.", provider="oauth"
        ) from exc


class StaticTokenProvider:
    def __init__(self, token: str) -> None:
        self._token = token

    def get_token(self) -> str:
        if not self._token:
            raise TerminalProviderError("Token do WhatsApp não configurado", provider="whatsapp_cloud")
        return self._token

    def invalidate(self) -> None:
        # token fixo: nada para renovar
        return None


@dataclass
class CachedToken:
    token: str
    expires_at: float | None


class CachedTokenProvider:
    """Guarda `{token, expires_at}` e renova sob demanda.

    O token é renovado quando faltam menos de `safety_margin` segundos para
    expirar. Sem `expires_in` na resposta, vale até `invalidate()`.
    """

    def __init__(
        self,
        fetch: Callable[[], TokenResponse],
        *,
        safety_margin: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self._safety_margin = safety_margin
        self._clock = clock
        self._cached: CachedToken | None = None
        self._lock = threading.Lock()

    def get_token(self) -> str:
        with self._lock:
            if self._cached is None or self._is_stale(self._cached):
                self._cached = self._refresh()
            return self._cached.token

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def _is_stale(self, cached: CachedToken) -> bool:
        if cached.expires_at is None:
            return False
        return self._clock() >= cached.expires_at - self._safety_margin

    def _refresh(self) -> CachedToken:
        response = self._fetch()
        expires_at = None
        if response.expires_in is not None:
            expires_at = self._clock() + response.expires_in
        logger.info("Token renovado (expires_in=%s)", response.expires_in)
        return CachedToken(token=response.access_token, expires_at=expires_at)


def client_credentials_fetcher(
    token_url: str,
    client_id: str,
    client_secret: str,
    *,
    timeout: float = 15.0,
    transport: httpx.BaseTransport | None = None,
) -> Callable[[], TokenResponse]:
    def _fetch() -> TokenResponse:
        data = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        }
        try:
            with httpx.Client(timeout=timeout, transport=transport) as client:
                response = client.post(token_url, data=data)
        except httpx.TimeoutException as exc:
            raise TransientProviderError("timeout ao obter token", provider="oauth", timeout=True) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"falha de rede ao obter token: {exc}", provider="oauth") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(f"token status {response.status_code}", provider="oauth")
        if response.status_code >= 400:
            raise TerminalProviderError(f"token status {response.status_code}", provider="oauth")
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise TerminalProviderError("Resposta de token não é JSON", provider="oauth") from exc
        return parse_token_response(payload)

    return _fetch
