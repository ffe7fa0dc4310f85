from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, Text, func

from sitebot.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSession(Base):
    __tablename__ = "conversation_sessions"

    # telefone do usuário; uma sessão por usuário
    user_id = Column(String, primary_key=True)

    step = Column(String, nullable=False, default="start")
    intended_action = Column(String, nullable=False, default="none")
    invalid_prompt_warned = Column(Boolean, nullable=False, default=False)

    # last_prompt, last_build_id (JSON serializado)
    data = Column(Text, nullable=False, default="{}")

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
