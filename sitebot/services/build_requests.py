from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitebot.core.errors import InvalidTransition
from sitebot.models.build_request import (
    ACTIVE_BUILD_STATUSES,
    BUILD_COMPLETED,
    BUILD_EXPIRED,
    BUILD_PENDING,
    BUILD_TRANSITIONS,
    BuildRequest,
)

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_error(message: str | None) -> str | None:
    if message is None:
        return None
    return message[:MAX_ERROR_LENGTH]


def _predecessors(next_status: str) -> tuple[str, ...]:
    return tuple(status for status, allowed in BUILD_TRANSITIONS.items() if next_status in allowed)


def get_build(db: Session, build_id: str) -> BuildRequest | None:
    return db.get(BuildRequest, build_id)


def get_by_dedupe_key(db: Session, dedupe_key: str) -> BuildRequest | None:
    return db.query(BuildRequest).filter(BuildRequest.dedupe_key == dedupe_key).first()


def create_build_request(
    db: Session,
    *,
    user_id: str,
    prompt: str,
    dedupe_key: str,
    intended_action: str = "create",
    hosting_slot_id: str | None = None,
) -> tuple[BuildRequest, bool]:
    """Cria o build ou devolve o já existente para o mesmo `dedupe_key`.

    A leitura prévia evita o INSERT no caso comum; a constraint unique cobre
    entregas duplicadas concorrentes.
    """
    existing = get_by_dedupe_key(db, dedupe_key)
    if existing is not None:
        logger.info("Build idempotente: dedupe_key=%s build=%s", dedupe_key, existing.id)
        return existing, False

    record = BuildRequest(
        user_id=user_id,
        prompt=prompt,
        dedupe_key=dedupe_key,
        intended_action=intended_action,
        hosting_slot_id=hosting_slot_id,
        status=BUILD_PENDING,
        attempts=0,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_by_dedupe_key(db, dedupe_key)
        if existing is None:
            raise
        logger.info("Build idempotente (corrida): dedupe_key=%s build=%s", dedupe_key, existing.id)
        return existing, False

    db.refresh(record)
    logger.info("Build criado: build=%s user=%s action=%s", record.id, user_id, intended_action)
    return record, True


def try_transition(
    db: Session,
    build_id: str,
    next_status: str,
    *,
    from_statuses: Iterable[str] | None = None,
    increment_attempts: bool = False,
    max_attempts: int | None = None,
    values: dict[str, Any] | None = None,
) -> bool:
    """UPDATE condicional sobre o status. Devolve True se esta chamada venceu."""
    allowed_from = tuple(from_statuses) if from_statuses is not None else _predecessors(next_status)
    for status in allowed_from:
        if next_status not in BUILD_TRANSITIONS.get(status, ()):
            raise InvalidTransition("build", status, next_status)

    updates: dict[Any, Any] = {BuildRequest.status: next_status, BuildRequest.updated_at: _utcnow()}
    if increment_attempts:
        updates[BuildRequest.attempts] = BuildRequest.attempts + 1
    for key, value in (values or {}).items():
        updates[getattr(BuildRequest, key)] = value

    query = db.query(BuildRequest).filter(
        BuildRequest.id == build_id,
        BuildRequest.status.in_(allowed_from),
    )
    if max_attempts is not None:
        query = query.filter(BuildRequest.attempts < max_attempts)

    updated = query.update(updates, synchronize_session=False)
    db.commit()
    return updated == 1


def transition(db: Session, record: BuildRequest, next_status: str, **values: Any) -> BuildRequest:
    """Move um build cujo status atual é conhecido; falha alto se alguém mudou antes."""
    current = record.status
    if next_status not in BUILD_TRANSITIONS.get(current, ()):
        raise InvalidTransition("build", current, next_status)
    if not try_transition(db, record.id, next_status, from_statuses=(current,), values=values):
        db.refresh(record)
        raise InvalidTransition("build", record.status, next_status)
    db.refresh(record)
    return record


def increment_attempts(db: Session, record: BuildRequest) -> BuildRequest:
    db.query(BuildRequest).filter(BuildRequest.id == record.id).update(
        {BuildRequest.attempts: BuildRequest.attempts + 1, BuildRequest.updated_at: _utcnow()},
        synchronize_session=False,
    )
    db.commit()
    db.refresh(record)
    return record


def assign_hosting_slot(db: Session, record: BuildRequest, slot_id: str) -> BuildRequest:
    """Grava o slot apenas se ainda estiver vazio; depois disso é imutável."""
    if record.hosting_slot_id:
        if record.hosting_slot_id != slot_id:
            logger.warning(
                "Provedor devolveu slot diferente: build=%s atual=%s novo=%s",
                record.id,
                record.hosting_slot_id,
                slot_id,
            )
        return record
    db.query(BuildRequest).filter(
        BuildRequest.id == record.id,
        BuildRequest.hosting_slot_id.is_(None),
    ).update({BuildRequest.hosting_slot_id: slot_id}, synchronize_session=False)
    db.commit()
    db.refresh(record)
    return record


def latest_slot_for_user(db: Session, user_id: str) -> str | None:
    record = (
        db.query(BuildRequest)
        .filter(
            BuildRequest.user_id == user_id,
            BuildRequest.status == BUILD_COMPLETED,
            BuildRequest.hosting_slot_id.isnot(None),
        )
        .order_by(BuildRequest.updated_at.desc())
        .first()
    )
    return record.hosting_slot_id if record else None


def find_fresh_thumbnail(
    db: Session,
    url: str,
    *,
    max_age_seconds: int,
    now: datetime | None = None,
) -> str | None:
    cutoff = (now or _utcnow()) - timedelta(seconds=max_age_seconds)
    record = (
        db.query(BuildRequest)
        .filter(
            BuildRequest.result_url == url,
            BuildRequest.thumbnail_url.isnot(None),
            BuildRequest.updated_at >= cutoff,
        )
        .order_by(BuildRequest.updated_at.desc())
        .first()
    )
    return record.thumbnail_url if record else None


def has_active_sibling(db: Session, slot_id: str, *, exclude_id: str | None = None) -> bool:
    query = db.query(BuildRequest.id).filter(
        BuildRequest.hosting_slot_id == slot_id,
        BuildRequest.status.in_(ACTIVE_BUILD_STATUSES),
    )
    if exclude_id is not None:
        query = query.filter(BuildRequest.id != exclude_id)
    return query.first() is not None


def slot_in_use(db: Session, slot_id: str) -> bool:
    """Algum build não expirado ainda aponta para o slot."""
    return (
        db.query(BuildRequest.id)
        .filter(BuildRequest.hosting_slot_id == slot_id, BuildRequest.status != BUILD_EXPIRED)
        .first()
        is not None
    )


def list_stale_builds(db: Session, statuses: Iterable[str], *, older_than: datetime) -> list[BuildRequest]:
    return (
        db.query(BuildRequest)
        .filter(BuildRequest.status.in_(tuple(statuses)), BuildRequest.updated_at < older_than)
        .order_by(BuildRequest.updated_at.asc())
        .all()
    )
