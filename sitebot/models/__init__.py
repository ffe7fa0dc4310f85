from sitebot.models.build_request import BuildRequest
from sitebot.models.conversation_session import ConversationSession
from sitebot.models.whatsapp_message_log import WhatsAppMessageLog
