from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.orm import Session

from sitebot.models.whatsapp_message_log import WhatsAppMessageLog
from sitebot.whatsapp.base import create_message_log


def parse_mock_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    message = payload.get("message") or {}
    if not message or not message.get("from"):
        return []
    return [
        {
            "message_id": message.get("id") or f"mock-{uuid.uuid4().hex[:8]}",
            "from_number": message.get("from"),
            "text": (message.get("text") or "").strip(),
            "message_type": message.get("type", "text"),
            "button_id": message.get("button_id"),
            "contact_name": message.get("contact_name"),
        }
    ]


class MockWhatsAppProvider:
    def send_text(
        self,
        db: Session,
        *,
        to_phone: str,
        text: str,
        context: dict[str, Any] | None = None,
    ) -> WhatsAppMessageLog:
        payload = {"type": "text", "to": to_phone, "text": text, "context": context or {}}
        return self._log(db, to_phone=to_phone, message_type="text", payload=payload)

    def send_image(
        self,
        db: Session,
        *,
        to_phone: str,
        image_url: str,
        caption: str | None = None,
    ) -> WhatsAppMessageLog:
        payload = {"type": "image", "to": to_phone, "image_url": image_url, "caption": caption}
        return self._log(db, to_phone=to_phone, message_type="image", payload=payload)

    def send_interactive(
        self,
        db: Session,
        *,
        to_phone: str,
        payload: dict[str, Any],
    ) -> WhatsAppMessageLog:
        body = {"type": "interactive", "to": to_phone, "interactive": payload}
        return self._log(db, to_phone=to_phone, message_type="interactive", payload=body)

    def _log(self, db: Session, *, to_phone: str, message_type: str, payload: dict[str, Any]) -> WhatsAppMessageLog:
        return create_message_log(
            db,
            direction="out",
            to_phone=to_phone,
            from_phone=None,
            message_type=message_type,
            payload=payload,
            status="sent",
            provider_message_id=f"mock-{uuid.uuid4().hex[:10]}",
        )
