from sitebot.fsm import session as sessions
from sitebot.fsm import states
from sitebot.models.build_request import BUILD_COMPLETED, BUILD_PROCESSING, BuildRequest
from sitebot.models.conversation_session import ConversationSession
from sitebot.models.whatsapp_message_log import WhatsAppMessageLog
from sitebot.services import build_requests
from sitebot.services.inbound import InboundMessageHandler
from sitebot.services.notifications import (
    ACCEPTED_MESSAGE,
    ASK_PROMPT_CREATE,
    ASK_PROMPT_EDIT,
    CHOICE_CREATE,
    CHOICE_EDIT,
    GOODBYE_MESSAGE,
    STILL_PROCESSING_MESSAGE,
)
from sitebot.whatsapp.service import WhatsAppService
from tests.fakes import RecordingWhatsAppProvider

USER = "5511988887777"


class _Conversation:
    def __init__(self, db):
        self.db = db
        self.whatsapp = RecordingWhatsAppProvider()
        self.handler = InboundMessageHandler(db, whatsapp=WhatsAppService(provider=self.whatsapp))
        self._counter = 0

    def send(self, text="", *, button_id=None, message_id=None):
        self._counter += 1
        return self.handler.handle(
            message_id=message_id or f"wamid.{self._counter}",
            from_number=USER,
            text=text,
            message_type="interactive" if button_id else "text",
            button_id=button_id,
        )

    def session(self):
        return self.db.get(ConversationSession, USER)


def test_greeting_gets_welcome_choice_without_persisting_session(db_session):
    chat = _Conversation(db_session)

    result = chat.send("oi")

    assert result.flow == "welcome"
    assert chat.whatsapp.sent[-1]["kind"] == "interactive"
    buttons = chat.whatsapp.sent[-1]["payload"]["action"]["buttons"]
    assert [button["reply"]["id"] for button in buttons] == [CHOICE_CREATE, CHOICE_EDIT]
    assert chat.session() is None


def test_inbound_messages_are_logged(db_session):
    chat = _Conversation(db_session)

    chat.send("oi", message_id="wamid.log")

    entry = db_session.query(WhatsAppMessageLog).filter_by(direction="in").one()
    assert entry.provider_message_id == "wamid.log"
    assert entry.status == "received"


def test_create_flow_end_to_end(db_session):
    chat = _Conversation(db_session)

    chat.send("oi")
    chosen = chat.send("Criar site", button_id=CHOICE_CREATE)
    assert chosen.flow == "choose_create"
    assert chat.session().step == states.AWAITING_PROMPT
    assert chat.whatsapp.texts()[-1] == ASK_PROMPT_CREATE

    result = chat.send("Quero um site para minha padaria artesanal")

    assert result.flow == "build_created"
    assert result.schedule_build is True
    assert result.build.status == "pending"
    assert result.build.intended_action == "create"
    assert chat.session().step == states.PROCESSING
    assert chat.whatsapp.texts()[-1] == ACCEPTED_MESSAGE
    assert sessions.load_data(chat.session())["last_build_id"] == result.build.id


def test_invalid_prompt_warns_once_per_streak(db_session):
    chat = _Conversation(db_session)
    chat.send("Criar site", button_id=CHOICE_CREATE)
    before = len(chat.whatsapp.sent)

    first = chat.send("qual o horário de vocês amanhã?")
    second = chat.send("e o preço do pão francês?")

    assert first.flow == second.flow == "invalid_prompt"
    assert len(chat.whatsapp.sent) == before + 1
    assert "Site para qual o horário" in chat.whatsapp.texts()[-1]
    assert chat.session().step == states.AWAITING_PROMPT
    assert chat.session().invalid_prompt_warned is True

    chat.send("Quero um site para minha padaria artesanal")
    assert chat.session().invalid_prompt_warned is False


def test_site_request_on_first_contact_goes_straight_to_build(db_session):
    chat = _Conversation(db_session)

    result = chat.send("Preciso de uma landing page para minha academia")

    assert result.flow == "build_created"
    assert chat.session().step == states.PROCESSING
    assert chat.session().intended_action == states.ACTION_CREATE


def test_duplicate_delivery_is_a_no_op(db_session):
    chat = _Conversation(db_session)
    first = chat.send("Preciso de uma landing page para minha academia", message_id="wamid.dup")
    sent_before = len(chat.whatsapp.sent)

    again = chat.send("Preciso de uma landing page para minha academia", message_id="wamid.dup")

    assert again.status == "duplicate"
    assert again.build.id == first.build.id
    assert again.schedule_build is False
    assert len(chat.whatsapp.sent) == sent_before
    assert db_session.query(BuildRequest).count() == 1


def test_messages_while_processing_get_status_reply(db_session):
    chat = _Conversation(db_session)
    chat.send("Preciso de uma landing page para minha academia")

    result = chat.send("Quero um site para minha padaria artesanal")

    assert result.flow == "processing"
    assert chat.whatsapp.texts()[-1] == STILL_PROCESSING_MESSAGE
    assert db_session.query(BuildRequest).count() == 1


def test_exit_word_clears_session(db_session):
    chat = _Conversation(db_session)
    chat.send("Criar site", button_id=CHOICE_CREATE)

    result = chat.send("Sair")

    assert result.flow == "exit"
    assert chat.session() is None
    assert chat.whatsapp.texts()[-1] == GOODBYE_MESSAGE


def test_edit_without_previous_site_falls_back_to_create(db_session):
    chat = _Conversation(db_session)

    chat.send("Editar site", button_id=CHOICE_EDIT)

    assert chat.session().intended_action == states.ACTION_CREATE
    assert chat.whatsapp.texts()[-1] == ASK_PROMPT_CREATE


def _complete_first_build(db, chat):
    first = chat.send("Quero um site para minha padaria artesanal")
    build_requests.assign_hosting_slot(db, first.build, "site-87777-abc123")
    build_requests.try_transition(db, first.build.id, BUILD_PROCESSING)
    build_requests.try_transition(db, first.build.id, BUILD_COMPLETED)
    sessions.apply_transition(db, chat.session(), states.COMPLETED)
    return first.build


def test_edit_reuses_previous_slot(db_session):
    chat = _Conversation(db_session)
    _complete_first_build(db_session, chat)

    chosen = chat.send("Editar site", button_id=CHOICE_EDIT)
    assert chosen.flow == "choose_edit"
    assert chat.whatsapp.texts()[-1] == ASK_PROMPT_EDIT

    result = chat.send("Quero mudar o site para ter uma página de contato")

    assert result.build.intended_action == "edit"
    assert result.build.hosting_slot_id == "site-87777-abc123"


def test_new_prompt_after_completion_starts_another_build(db_session):
    chat = _Conversation(db_session)
    first = _complete_first_build(db_session, chat)

    result = chat.send("Quero um site para minha barbearia no centro")

    assert result.flow == "build_created"
    assert result.build.id != first.id
    assert result.build.hosting_slot_id is None
