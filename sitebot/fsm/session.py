from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from sitebot.core.errors import InvalidTransition
from sitebot.fsm import states
from sitebot.models.conversation_session import ConversationSession

logger = logging.getLogger(__name__)


def can_transition(current: str | None, next_step: str) -> bool:
    allowed = states.VALID_TRANSITIONS.get(current or "")
    if not allowed:
        return False
    return next_step in allowed


def get_or_create(db: Session, user_id: str) -> ConversationSession:
    """Devolve a sessão do usuário ou uma nova em `start`.

    A sessão nova não é adicionada à sessão do banco: nada é gravado até a
    primeira transição.
    """
    session = db.get(ConversationSession, user_id)
    if session is not None:
        return session
    return ConversationSession(
        user_id=user_id,
        step=states.START,
        intended_action=states.ACTION_NONE,
        invalid_prompt_warned=False,
        data="{}",
    )


def apply_transition(db: Session, session: ConversationSession, next_step: str) -> ConversationSession:
    current = session.step or states.START
    if not can_transition(current, next_step):
        logger.warning(
            "Transição de sessão recusada: user=%s %s -> %s",
            session.user_id,
            current,
            next_step,
        )
        raise InvalidTransition("session", current, next_step)

    session.step = next_step
    db.add(session)
    db.commit()
    return session


def set_intended_action(db: Session, session: ConversationSession, action: str) -> None:
    if action not in states.ACTIONS:
        raise ValueError(f"Ação inválida: {action}")
    session.intended_action = action
    db.add(session)
    db.commit()


def set_invalid_prompt_warned(db: Session, session: ConversationSession, warned: bool) -> None:
    session.invalid_prompt_warned = warned
    db.add(session)
    db.commit()


def load_data(session: ConversationSession) -> dict[str, Any]:
    try:
        data = json.loads(session.data or "{}")
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def update_data(db: Session, session: ConversationSession, **values: Any) -> dict[str, Any]:
    data = load_data(session)
    data.update(values)
    session.data = json.dumps(data, ensure_ascii=False)
    db.add(session)
    db.commit()
    return data


def clear(db: Session, user_id: str) -> bool:
    session = db.get(ConversationSession, user_id)
    if session is None:
        return False
    db.delete(session)
    db.commit()
    return True


def finish_build(db: Session, user_id: str, build_id: str, next_step: str) -> bool:
    """Fecha o `processing` da sessão só se ela ainda aguarda este build."""
    session = db.get(ConversationSession, user_id)
    if session is None or session.step != states.PROCESSING:
        return False
    if load_data(session).get("last_build_id") != build_id:
        logger.info("Sessão de %s aguarda outro build; step mantido", user_id)
        return False
    try:
        apply_transition(db, session, next_step)
    except InvalidTransition:
        db.rollback()
        return False
    return True
