from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, status

from sitebot.core import config


def require_internal_token(x_internal_token: str | None = Header(default=None)) -> None:
    """Protege rotas internas (cron de limpeza, disparo manual de builds)."""
    configured = (config.INTERNAL_API_TOKEN or "").strip()
    incoming = (x_internal_token or "").strip()
    if not configured:
        if config.IS_PROD:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Rotas internas em produção requerem INTERNAL_API_TOKEN configurado",
            )
        return
    if not hmac.compare_digest(incoming.encode(), configured.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")
