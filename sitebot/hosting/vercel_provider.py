from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable
from uuid import uuid4

import httpx
from pydantic import BaseModel, ValidationError

from sitebot.core.config import VERCEL_API_URL, VERCEL_POLL_INTERVAL_SECONDS, VERCEL_TEAM_ID, VERCEL_TOKEN
from sitebot.core.errors import TerminalProviderError, TransientProviderError
from sitebot.hosting.base import Deployment, ensure_complete_html

logger = logging.getLogger(__name__)

READY = "READY"
FAILED_STATES = {"ERROR", "CANCELED"}


class VercelDeployment(BaseModel):
    id: str
    url: str | None = None
    readyState: str = "QUEUED"


def build_slot_name(owner_key: str | None) -> str:
    digits = re.sub(r"\D", "", owner_key or "")[-8:]
    suffix = uuid4().hex[:6]
    return f"site-{digits}-{suffix}" if digits else f"site-{suffix}"


def public_url_for_slot(slot_id: str) -> str:
    return f"https://{slot_id}.vercel.app"


class VercelProvider:
    """Deploy estático na Vercel.

    O slot é o nome do projeto: redeploys para o mesmo nome caem no mesmo
    alias de produção `https://<slot>.vercel.app`, que é o endereço enviado
    ao usuário.
    """

    name = "vercel"

    def __init__(
        self,
        *,
        token: str = VERCEL_TOKEN,
        api_url: str = VERCEL_API_URL,
        team_id: str = VERCEL_TEAM_ID,
        poll_interval: float = VERCEL_POLL_INTERVAL_SECONDS,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.team_id = team_id
        self.poll_interval = poll_interval
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

    def deploy_site(
        self,
        markup: str,
        slot_id: str | None = None,
        owner_key: str | None = None,
        *,
        timeout: float,
    ) -> Deployment:
        if not self.token:
            raise TerminalProviderError("VERCEL_TOKEN não configurado", provider=self.name)

        slot = slot_id or self.reserve_slot(owner_key)
        deadline = self._clock() + timeout
        body = {
            "name": slot,
            "project": slot,
            "target": "production",
            "files": [{"file": "index.html", "data": ensure_complete_html(markup)}],
            "projectSettings": {"framework": None, "buildCommand": None, "outputDirectory": None},
        }

        with httpx.Client(timeout=min(timeout, 60.0), transport=self._transport) as client:
            created = self._parse(self._request(client, "POST", "/v13/deployments", json=body))
            logger.info("Deploy criado: slot=%s deployment=%s state=%s", slot, created.id, created.readyState)

            state = created.readyState
            while state != READY:
                if state in FAILED_STATES:
                    raise TerminalProviderError(f"Deploy {created.id} terminou em {state}", provider=self.name)
                if self._clock() >= deadline:
                    raise TransientProviderError(
                        f"Deploy {created.id} não ficou pronto em {timeout:.0f}s",
                        provider=self.name,
                        timeout=True,
                    )
                self._sleep(self.poll_interval)
                current = self._parse(self._request(client, "GET", f"/v13/deployments/{created.id}"))
                state = current.readyState

        return Deployment(url=public_url_for_slot(slot), slot_id=slot)

    def reserve_slot(self, owner_key: str | None = None) -> str:
        """Só escolhe o nome do projeto; nada é criado na Vercel até o deploy."""
        return build_slot_name(owner_key)

    def release_slot(self, slot_id: str) -> None:
        if not self.token:
            raise TerminalProviderError("VERCEL_TOKEN não configurado", provider=self.name)
        with httpx.Client(timeout=30.0, transport=self._transport) as client:
            try:
                self._request(client, "DELETE", f"/v9/projects/{slot_id}")
            except TerminalProviderError as exc:
                if "status 404" not in str(exc):
                    raise
                logger.info("Projeto %s já não existia na Vercel", slot_id)
        logger.info("Projeto removido da Vercel: %s", slot_id)

    def _request(self, client: httpx.Client, method: str, path: str, **kwargs: Any) -> httpx.Response:
        params = {"teamId": self.team_id} if self.team_id else None
        headers = {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}
        try:
            response = client.request(method, f"{self.api_url}{path}", headers=headers, params=params, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientProviderError(f"timeout na Vercel: {method} {path}", provider=self.name, timeout=True) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"falha de rede na Vercel: {exc}", provider=self.name) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"Vercel status {response.status_code}: {response.text[:200]}", provider=self.name
            )
        if response.status_code >= 400:
            raise TerminalProviderError(
                f"Vercel status {response.status_code}: {response.text[:200]}", provider=self.name
            )
        return response

    def _parse(self, response: httpx.Response) -> VercelDeployment:
        try:
            return VercelDeployment.model_validate(response.json())
        except (json.JSONDecodeError, ValidationError) as exc:
            raise TerminalProviderError(f"Resposta inesperada da Vercel: {exc}", provider=self.name) from exc
