from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

import httpx
from sqlalchemy.orm import Session

from sitebot.core.config import META_API_VERSION, META_WA_PHONE_NUMBER_ID
from sitebot.core.errors import ProviderError, TerminalProviderError, TransientProviderError
from sitebot.models.whatsapp_message_log import WhatsAppMessageLog
from sitebot.services.retry import RetryPolicy, linear_backoff, with_retry
from sitebot.whatsapp.base import create_message_log
from sitebot.whatsapp.token_provider import TokenProvider

logger = logging.getLogger(__name__)

IMAGE_CAPTION = "Preview do seu site gerado"


def parse_cloud_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            phone_number_id = metadata.get("phone_number_id")

            contacts = value.get("contacts") or []
            contact_name = None
            if contacts:
                contact_name = ((contacts[0].get("profile") or {}).get("name")) or None

            for msg in value.get("messages", []) or []:
                msg_type = msg.get("type") or "text"
                text = ""
                button_id = None
                if msg_type == "text":
                    text = ((msg.get("text") or {}).get("body")) or ""
                elif msg_type == "interactive":
                    reply = (msg.get("interactive") or {}).get("button_reply") or {}
                    button_id = reply.get("id")
                    text = reply.get("title") or ""
                elif msg_type == "button":
                    # botões de template chegam como "button"
                    button = msg.get("button") or {}
                    button_id = button.get("payload")
                    text = button.get("text") or ""
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                messages.append(
                    {
                        "message_id": message_id,
                        "from_number": from_number,
                        "text": text.strip(),
                        "message_type": msg_type,
                        "button_id": button_id,
                        "phone_number_id": phone_number_id,
                        "contact_name": contact_name,
                    }
                )
    return messages


class CloudWhatsAppProvider:
    MAX_RETRIES = 3

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        phone_number_id: str = META_WA_PHONE_NUMBER_ID,
        api_version: str = META_API_VERSION,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token_provider = token_provider
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self._transport = transport
        self._sleep = sleep
        self._policy = RetryPolicy(max_attempts=self.MAX_RETRIES, backoff=linear_backoff(1.0, 5.0))

    def send_text(
        self,
        db: Session,
        *,
        to_phone: str,
        text: str,
        context: dict[str, Any] | None = None,
    ) -> WhatsAppMessageLog:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to_phone,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        if context:
            payload["context"] = context
        return self._send(db, to_phone=to_phone, message_type="text", payload=payload)

    def send_image(
        self,
        db: Session,
        *,
        to_phone: str,
        image_url: str,
        caption: str | None = None,
    ) -> WhatsAppMessageLog:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to_phone,
            "type": "image",
            "image": {"link": image_url, "caption": caption or IMAGE_CAPTION},
        }
        return self._send(db, to_phone=to_phone, message_type="image", payload=payload)

    def send_interactive(
        self,
        db: Session,
        *,
        to_phone: str,
        payload: dict[str, Any],
    ) -> WhatsAppMessageLog:
        body = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to_phone,
            "type": "interactive",
            "interactive": payload,
        }
        return self._send(db, to_phone=to_phone, message_type="interactive", payload=body)

    def _send(
        self,
        db: Session,
        *,
        to_phone: str,
        message_type: str,
        payload: dict[str, Any],
    ) -> WhatsAppMessageLog:
        if not self.phone_number_id:
            return create_message_log(
                db,
                direction="out",
                to_phone=to_phone,
                from_phone=None,
                message_type=message_type,
                payload=payload,
                status="failed",
                error="Credenciais do WhatsApp Cloud incompletas",
            )

        url = f"https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages"

        try:
            data = with_retry(
                lambda: self._post(url, payload),
                self._policy,
                reason="whatsapp_send_failed",
                sleep=self._sleep,
            )
        except ProviderError as exc:
            logger.warning("Falha ao enviar WhatsApp para %s: %s", to_phone, exc)
            return create_message_log(
                db,
                direction="out",
                to_phone=to_phone,
                from_phone=self.phone_number_id,
                message_type=message_type,
                payload=payload,
                status="failed",
                error=str(exc),
            )

        provider_id = ((data.get("messages") or [{}])[0].get("id")) if isinstance(data, dict) else None
        return create_message_log(
            db,
            direction="out",
            to_phone=to_phone,
            from_phone=self.phone_number_id,
            message_type=message_type,
            payload=payload,
            status="sent",
            provider_message_id=provider_id,
            response_payload=data,
        )

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.token_provider.get_token()}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(timeout=20.0, transport=self._transport) as client:
                response = client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise TransientProviderError("timeout no WhatsApp Cloud", provider="whatsapp_cloud", timeout=True) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"falha de rede no WhatsApp Cloud: {exc}", provider="whatsapp_cloud") from exc

        body_text = response.text
        if response.status_code == 401:
            # token expirado antes do previsto: força renovação na próxima tentativa
            self.token_provider.invalidate()
            raise TransientProviderError(f"Erro WhatsApp 401: {body_text[:200]}", provider="whatsapp_cloud")
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"Erro WhatsApp {response.status_code}: {body_text[:200]}", provider="whatsapp_cloud"
            )
        if response.status_code >= 400:
            raise TerminalProviderError(
                f"Erro WhatsApp {response.status_code}: {body_text[:200]}", provider="whatsapp_cloud"
            )

        try:
            return response.json()
        except json.JSONDecodeError:
            return {"raw": body_text}
