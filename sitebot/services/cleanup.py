from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from sitebot.core.errors import ProviderError
from sitebot.fsm import states
from sitebot.fsm.session import finish_build
from sitebot.hosting.base import HostingProvider
from sitebot.models.build_request import (
    BUILD_COMPLETED,
    BUILD_EXPIRED,
    BUILD_FAILED,
    BUILD_PROCESSING,
    BUILD_TIMEOUT,
    BuildRequest,
)
from sitebot.services import build_requests
from sitebot.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

EXPIRABLE_STATUSES = (BUILD_COMPLETED, BUILD_FAILED)
STUCK_BUILD_ERROR = "worker_lost: build parado em processing"


@dataclass
class CleanupResult:
    expired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    released_slots: list[str] = field(default_factory=list)
    requeued: list[str] = field(default_factory=list)
    reclaimed: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "expired": self.expired,
            "skipped": self.skipped,
            "released_slots": self.released_slots,
            "requeued": self.requeued,
            "reclaimed": self.reclaimed,
        }


def expire_stale_builds(
    db: Session,
    hosting: HostingProvider,
    *,
    max_age_seconds: int,
    now: datetime | None = None,
    result: CleanupResult | None = None,
) -> CleanupResult:
    """Expira builds concluídos/falhos antigos e libera slots sem uso.

    Um build não expira enquanto outro build do mesmo slot estiver ativo.
    """
    result = result or CleanupResult()
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=max_age_seconds)

    for record in build_requests.list_stale_builds(db, EXPIRABLE_STATUSES, older_than=cutoff):
        slot_id = record.hosting_slot_id
        if slot_id and build_requests.has_active_sibling(db, slot_id, exclude_id=record.id):
            logger.info("Build %s mantido: slot %s com build ativo", record.id, slot_id)
            result.skipped.append(record.id)
            continue

        if not build_requests.try_transition(db, record.id, BUILD_EXPIRED, from_statuses=(record.status,)):
            continue
        result.expired.append(record.id)

        if slot_id and slot_id not in result.released_slots and not build_requests.slot_in_use(db, slot_id):
            try:
                hosting.release_slot(slot_id)
            except ProviderError as exc:
                logger.warning("Erro ao liberar slot %s: %s", slot_id, exc)
                continue
            result.released_slots.append(slot_id)

    logger.info(
        "Limpeza concluída: %s expirados, %s slots liberados",
        len(result.expired),
        len(result.released_slots),
    )
    return result


def find_retryable_timeouts(db: Session, *, max_retries: int) -> list[BuildRequest]:
    return (
        db.query(BuildRequest)
        .filter(BuildRequest.status == BUILD_TIMEOUT, BuildRequest.attempts < max_retries)
        .order_by(BuildRequest.updated_at.asc())
        .all()
    )


def reclaim_stuck_builds(
    db: Session,
    *,
    older_than_seconds: float,
    max_retries: int,
    now: datetime | None = None,
    result: CleanupResult | None = None,
    notifier: NotificationDispatcher | None = None,
) -> CleanupResult:
    """Move para `timeout` builds presos em `processing` por um worker que morreu.

    Os que ainda têm tentativas voltam pela fila de timeouts; os demais
    encerram a sessão do usuário em `error`.
    """
    result = result or CleanupResult()
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=older_than_seconds)

    for record in build_requests.list_stale_builds(db, (BUILD_PROCESSING,), older_than=cutoff):
        moved = build_requests.try_transition(
            db,
            record.id,
            BUILD_TIMEOUT,
            from_statuses=(BUILD_PROCESSING,),
            values={"last_error": STUCK_BUILD_ERROR},
        )
        if not moved:
            continue
        db.refresh(record)
        logger.warning("Build %s preso em processing; marcado como timeout", record.id, extra={"status": record.status})
        result.reclaimed.append(record.id)

        if record.attempts < max_retries:
            continue
        finish_build(db, record.user_id, record.id, states.ERROR)
        if notifier is not None:
            notifier.build_failed(record)

    return result
