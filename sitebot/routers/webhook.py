import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from sitebot.core import config
from sitebot.core.database import get_db
from sitebot.services.inbound import InboundMessageHandler
from sitebot.services.orchestrator import run_build_in_background
from sitebot.whatsapp.service import parse_webhook

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/webhook")
async def verify_webhook(request: Request):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and config.META_WA_VERIFY_TOKEN and token == config.META_WA_VERIFY_TOKEN:
        return PlainTextResponse(challenge or "")

    raise HTTPException(status_code=403, detail="Verify token inválido")


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Payload inválido")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload inválido")

    messages = parse_webhook(payload)
    if not messages:
        # status de entrega/leitura também chegam aqui
        return {"status": "ignored"}

    handler = InboundMessageHandler(db)
    results = []
    for extracted in messages:
        request.state.user_id = extracted["from_number"]
        result = handler.handle(
            message_id=extracted["message_id"],
            from_number=extracted["from_number"],
            text=extracted.get("text", ""),
            message_type=extracted.get("message_type", "text"),
            button_id=extracted.get("button_id"),
            contact_name=extracted.get("contact_name"),
            phone_number_id=extracted.get("phone_number_id"),
        )
        if result.schedule_build and result.build is not None:
            background_tasks.add_task(run_build_in_background, result.build.id)
        results.append(result.as_dict())

    if len(results) == 1:
        return results[0]
    return {"status": "ok", "results": results}
