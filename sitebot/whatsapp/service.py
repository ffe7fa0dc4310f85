from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from sitebot.core.config import (
    IS_DEV,
    META_WA_ACCESS_TOKEN,
    META_WA_CLIENT_ID,
    META_WA_CLIENT_SECRET,
    META_WA_TOKEN_SAFETY_MARGIN_SECONDS,
    META_WA_TOKEN_URL,
    WHATSAPP_PROVIDER,
)
from sitebot.models.whatsapp_message_log import WhatsAppMessageLog
from sitebot.whatsapp.base import WhatsAppProvider, create_message_log
from sitebot.whatsapp.cloud_provider import CloudWhatsAppProvider, parse_cloud_webhook
from sitebot.whatsapp.mock_provider import MockWhatsAppProvider, parse_mock_webhook
from sitebot.whatsapp.token_provider import (
    CachedTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    client_credentials_fetcher,
)

logger = logging.getLogger(__name__)


def build_token_provider() -> TokenProvider:
    if META_WA_TOKEN_URL and META_WA_CLIENT_ID and META_WA_CLIENT_SECRET:
        fetch = client_credentials_fetcher(META_WA_TOKEN_URL, META_WA_CLIENT_ID, META_WA_CLIENT_SECRET)
        return CachedTokenProvider(fetch, safety_margin=META_WA_TOKEN_SAFETY_MARGIN_SECONDS)
    return StaticTokenProvider(META_WA_ACCESS_TOKEN)


def parse_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    if payload.get("object") == "whatsapp_business_account" or payload.get("entry"):
        return parse_cloud_webhook(payload)
    return parse_mock_webhook(payload)


class WhatsAppService:
    def __init__(self, provider: WhatsAppProvider | None = None) -> None:
        self._mock_provider = MockWhatsAppProvider()
        if provider is not None:
            self._provider = provider
        elif WHATSAPP_PROVIDER == "cloud":
            self._provider = CloudWhatsAppProvider(build_token_provider())
        else:
            self._provider = self._mock_provider

    def _should_fallback(self, provider: WhatsAppProvider) -> bool:
        return IS_DEV and provider is not self._mock_provider

    def send_text(self, db: Session, *, to_phone: str, text: str) -> WhatsAppMessageLog:
        log_entry = self._provider.send_text(db, to_phone=to_phone, text=text)
        if log_entry.status == "failed" and self._should_fallback(self._provider):
            logger.warning("WhatsApp Cloud falhou, usando mock (to=%s)", to_phone)
            return self._mock_provider.send_text(db, to_phone=to_phone, text=text, context={"fallback": "mock"})
        return log_entry

    def send_image(
        self,
        db: Session,
        *,
        to_phone: str,
        image_url: str,
        caption: str | None = None,
    ) -> WhatsAppMessageLog:
        return self._provider.send_image(db, to_phone=to_phone, image_url=image_url, caption=caption)

    def send_interactive_choice(
        self,
        db: Session,
        *,
        to_phone: str,
        body: str,
        options: list[tuple[str, str]],
    ) -> WhatsAppMessageLog:
        """Envia até 3 botões de resposta rápida (`id`, `título`)."""
        payload = {
            "type": "button",
            "body": {"text": body},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": option_id, "title": title[:20]}}
                    for option_id, title in options[:3]
                ]
            },
        }
        return self._provider.send_interactive(db, to_phone=to_phone, payload=payload)

    def log_inbound(
        self,
        db: Session,
        *,
        from_phone: str,
        to_phone: str | None,
        message_type: str,
        payload: dict[str, Any],
        provider_message_id: str | None = None,
    ) -> WhatsAppMessageLog:
        return create_message_log(
            db,
            direction="in",
            to_phone=to_phone,
            from_phone=from_phone,
            message_type=message_type,
            payload=payload,
            status="received",
            provider_message_id=provider_message_id,
        )
