from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

logger = logging.getLogger(__name__)


def verify_live_url(
    url: str,
    *,
    attempts: int = 5,
    delay_seconds: float = 3.0,
    timeout: float = 10.0,
    transport: httpx.BaseTransport | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Confirma que o endereço publicado responde com 2xx/3xx."""
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True, transport=transport) as client:
                response = client.get(url)
            if response.status_code < 400:
                return True
            logger.info("Probe %s/%s em %s: status %s", attempt, attempts, url, response.status_code)
        except httpx.HTTPError as exc:
            logger.info("Probe %s/%s em %s falhou: %s", attempt, attempts, url, exc)

        if attempt < attempts:
            sleep(delay_seconds)
    return False
