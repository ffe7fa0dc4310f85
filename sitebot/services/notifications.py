from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from sitebot.fsm import states
from sitebot.fsm.session import set_invalid_prompt_warned
from sitebot.models.build_request import BUILD_TIMEOUT, BuildRequest
from sitebot.models.conversation_session import ConversationSession
from sitebot.services.prompt_validator import PromptValidation
from sitebot.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)

ACCEPTED_MESSAGE = "⌛ Gerando seu site profissional... Isso pode levar até 1 minuto!"
COMPLETED_MESSAGE = "✅ Seu site está pronto!\n\n🌐 {url}"
TIMEOUT_MESSAGE = "⌛ O tempo para gerar seu site expirou. Estamos tentando novamente..."
FAILED_MESSAGE = "❌ Ocorreu um erro ao gerar seu site. Por favor, tente novamente mais tarde."
THUMBNAIL_CAPTION = "Preview do seu site gerado"
WELCOME_MESSAGE = "👋 Olá! Eu crio sites profissionais a partir de uma descrição. O que você quer fazer?"
ASK_PROMPT_CREATE = (
    "📝 Descreva o site que você quer. Exemplo:\n"
    "\"Quero um site para minha loja de roupas\""
)
ASK_PROMPT_EDIT = "📝 Descreva o que você quer mudar no seu site."
STILL_PROCESSING_MESSAGE = "⏳ Seu site ainda está sendo gerado. Assim que ficar pronto eu te aviso!"
GOODBYE_MESSAGE = "👋 Conversa encerrada. Quando quiser um novo site é só mandar uma mensagem."
INVALID_PROMPT_TEMPLATE = "❌ {message}\n\n💡 Tente algo como: \"{suggestion}\""

CHOICE_CREATE = "action_create"
CHOICE_EDIT = "action_edit"
WELCOME_OPTIONS = [(CHOICE_CREATE, "Criar site"), (CHOICE_EDIT, "Editar site")]


class NotificationDispatcher:
    """Traduz eventos do build/conversa em mensagens para o usuário.

    Falha de envio nunca sobe: é logada e ignorada para não reabrir o fluxo.
    """

    def __init__(self, db: Session, whatsapp: WhatsAppService | None = None) -> None:
        self.db = db
        self.whatsapp = whatsapp or WhatsAppService()

    def _safe_send(self, description: str, user_id: str, send: Callable[[], object]) -> bool:
        try:
            log_entry = send()
        except Exception:
            logger.exception("Falha ao enviar notificação %s para %s", description, user_id)
            self.db.rollback()
            return False
        if getattr(log_entry, "status", None) == "failed":
            logger.warning("Notificação %s para %s não entregue: %s", description, user_id, log_entry.error)
            return False
        return True

    def _text(self, description: str, user_id: str, text: str) -> bool:
        return self._safe_send(
            description,
            user_id,
            lambda: self.whatsapp.send_text(self.db, to_phone=user_id, text=text),
        )

    def build_accepted(self, build: BuildRequest) -> bool:
        return self._text("build_accepted", build.user_id, ACCEPTED_MESSAGE)

    def build_completed(self, build: BuildRequest) -> bool:
        if build.thumbnail_url:
            self._safe_send(
                "build_thumbnail",
                build.user_id,
                lambda: self.whatsapp.send_image(
                    self.db,
                    to_phone=build.user_id,
                    image_url=build.thumbnail_url,
                    caption=THUMBNAIL_CAPTION,
                ),
            )
        return self._text("build_completed", build.user_id, COMPLETED_MESSAGE.format(url=build.result_url))

    def build_failed(self, build: BuildRequest) -> bool:
        message = TIMEOUT_MESSAGE if build.status == BUILD_TIMEOUT else FAILED_MESSAGE
        return self._text("build_failed", build.user_id, message)

    def invalid_prompt(self, session: ConversationSession, validation: PromptValidation) -> bool:
        """Avisa uma vez por sequência de prompts inválidos."""
        if session.invalid_prompt_warned:
            logger.info("Prompt inválido repetido, aviso suprimido: user=%s", session.user_id)
            return False
        text = INVALID_PROMPT_TEMPLATE.format(
            message=validation.message,
            suggestion=validation.suggestion or "Quero um site para minha empresa",
        )
        sent = self._text("invalid_prompt", session.user_id, text)
        set_invalid_prompt_warned(self.db, session, True)
        return sent

    def welcome(self, user_id: str) -> bool:
        return self._safe_send(
            "welcome",
            user_id,
            lambda: self.whatsapp.send_interactive_choice(
                self.db,
                to_phone=user_id,
                body=WELCOME_MESSAGE,
                options=WELCOME_OPTIONS,
            ),
        )

    def ask_prompt(self, user_id: str, action: str) -> bool:
        text = ASK_PROMPT_EDIT if action == states.ACTION_EDIT else ASK_PROMPT_CREATE
        return self._text("ask_prompt", user_id, text)

    def still_processing(self, user_id: str) -> bool:
        return self._text("still_processing", user_id, STILL_PROCESSING_MESSAGE)

    def goodbye(self, user_id: str) -> bool:
        return self._text("goodbye", user_id, GOODBYE_MESSAGE)
