from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from sitebot.core.request_context import set_request_context
from sitebot.fsm import states
from sitebot.fsm import session as sessions
from sitebot.models.build_request import BuildRequest
from sitebot.models.conversation_session import ConversationSession
from sitebot.services import build_requests
from sitebot.services.notifications import CHOICE_CREATE, CHOICE_EDIT, NotificationDispatcher
from sitebot.services.prompt_validator import validate
from sitebot.services.text import normalize
from sitebot.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)

EXIT_WORDS = {"sair", "cancelar"}
CREATE_WORDS = {"criar", "criar site", "novo site"}
EDIT_WORDS = {"editar", "editar site", "alterar site"}


@dataclass
class InboundResult:
    status: str
    flow: str
    build: BuildRequest | None = None
    # True quando um build novo foi criado e precisa ser disparado
    schedule_build: bool = False

    def as_dict(self) -> dict[str, str | None]:
        return {
            "status": self.status,
            "flow": self.flow,
            "build_id": self.build.id if self.build else None,
        }


def _action_from_reply(button_id: str | None, normalized_text: str) -> str | None:
    if button_id == CHOICE_CREATE or normalized_text in CREATE_WORDS:
        return states.ACTION_CREATE
    if button_id == CHOICE_EDIT or normalized_text in EDIT_WORDS:
        return states.ACTION_EDIT
    return None


class InboundMessageHandler:
    """Fluxo de conversa: cada mensagem recebida move a sessão do usuário."""

    def __init__(
        self,
        db: Session,
        *,
        whatsapp: WhatsAppService | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.db = db
        self.whatsapp = whatsapp or WhatsAppService()
        self.notifier = notifier or NotificationDispatcher(db, self.whatsapp)

    def handle(
        self,
        *,
        message_id: str,
        from_number: str,
        text: str,
        message_type: str = "text",
        button_id: str | None = None,
        contact_name: str | None = None,
        phone_number_id: str | None = None,
    ) -> InboundResult:
        set_request_context(user_id=from_number)
        logger.info("WhatsApp recebido: from=%s message_id=%s type=%s", from_number, message_id, message_type)

        existing = build_requests.get_by_dedupe_key(self.db, message_id)
        if existing is not None:
            logger.info("Mensagem %s já gerou o build %s", message_id, existing.id)
            return InboundResult(status="duplicate", flow="duplicate", build=existing)

        self.whatsapp.log_inbound(
            self.db,
            from_phone=from_number,
            to_phone=phone_number_id,
            message_type=message_type,
            payload={"text": text, "button_id": button_id, "contact_name": contact_name},
            provider_message_id=message_id,
        )

        normalized = normalize(text)
        if normalized in EXIT_WORDS:
            sessions.clear(self.db, from_number)
            self.notifier.goodbye(from_number)
            return InboundResult(status="ok", flow="exit")

        session = sessions.get_or_create(self.db, from_number)
        step = session.step or states.START
        action = _action_from_reply(button_id, normalized)

        if step == states.START:
            if action:
                return self._choose_action(session, action)
            if validate(text).valid:
                # já veio com a descrição do site: segue direto como criação
                sessions.set_intended_action(self.db, session, states.ACTION_CREATE)
                sessions.apply_transition(self.db, session, states.AWAITING_PROMPT)
                return self._process_prompt(session, text, message_id)
            self.notifier.welcome(from_number)
            return InboundResult(status="ok", flow="welcome")

        if step == states.AWAITING_PROMPT:
            if action:
                return self._choose_action(session, action)
            return self._process_prompt(session, text, message_id)

        if step == states.VALIDATING_PROMPT:
            # validação anterior interrompida no meio
            sessions.apply_transition(self.db, session, states.AWAITING_PROMPT)
            return self._process_prompt(session, text, message_id)

        if step == states.PROCESSING:
            self.notifier.still_processing(from_number)
            return InboundResult(status="ok", flow="processing")

        # completed / error: nova rodada com a ação anterior
        sessions.apply_transition(self.db, session, states.AWAITING_PROMPT)
        if action:
            return self._choose_action(session, action)
        return self._process_prompt(session, text, message_id)

    def _choose_action(self, session: ConversationSession, action: str) -> InboundResult:
        if action == states.ACTION_EDIT and not build_requests.latest_slot_for_user(self.db, session.user_id):
            logger.info("Usuário %s pediu edição sem site anterior; seguindo como criação", session.user_id)
            action = states.ACTION_CREATE

        sessions.set_intended_action(self.db, session, action)
        if session.step != states.AWAITING_PROMPT:
            sessions.apply_transition(self.db, session, states.AWAITING_PROMPT)
        self.notifier.ask_prompt(session.user_id, action)
        return InboundResult(status="ok", flow=f"choose_{action}")

    def _process_prompt(self, session: ConversationSession, text: str, message_id: str) -> InboundResult:
        sessions.apply_transition(self.db, session, states.VALIDATING_PROMPT)
        validation = validate(text)
        if not validation.valid:
            sessions.apply_transition(self.db, session, states.AWAITING_PROMPT)
            logger.info("Prompt inválido (%s) de %s", validation.reason, session.user_id)
            self.notifier.invalid_prompt(session, validation)
            return InboundResult(status="ok", flow="invalid_prompt")

        action = session.intended_action
        if action not in (states.ACTION_CREATE, states.ACTION_EDIT):
            action = states.ACTION_CREATE

        slot_id = None
        if action == states.ACTION_EDIT:
            slot_id = build_requests.latest_slot_for_user(self.db, session.user_id)
            if slot_id is None:
                action = states.ACTION_CREATE

        record, created = build_requests.create_build_request(
            self.db,
            user_id=session.user_id,
            prompt=text.strip(),
            dedupe_key=message_id,
            intended_action=action,
            hosting_slot_id=slot_id,
        )

        sessions.apply_transition(self.db, session, states.PROCESSING)
        sessions.set_invalid_prompt_warned(self.db, session, False)
        sessions.update_data(self.db, session, last_prompt=record.prompt, last_build_id=record.id)

        if created:
            self.notifier.build_accepted(record)
        return InboundResult(status="ok", flow="build_created", build=record, schedule_build=created)
