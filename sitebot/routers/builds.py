from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from sitebot.core import config
from sitebot.core.database import get_db
from sitebot.core.metrics import build_metrics, request_metrics
from sitebot.deps import require_internal_token
from sitebot.hosting.service import get_hosting_provider
from sitebot.models.build_request import BUILD_PENDING
from sitebot.services import build_requests
from sitebot.services.build_policy import default_build_policy
from sitebot.services.cleanup import (
    CleanupResult,
    expire_stale_builds,
    find_retryable_timeouts,
    reclaim_stuck_builds,
)
from sitebot.services.notifications import NotificationDispatcher
from sitebot.services.orchestrator import can_retry, run_build_in_background

router = APIRouter(tags=["builds"], dependencies=[Depends(require_internal_token)])


class BuildRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    status: str
    intended_action: str
    hosting_slot_id: str | None = None
    result_url: str | None = None
    thumbnail_url: str | None = None
    attempts: int
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _get_build_or_404(db: Session, build_id: str):
    record = build_requests.get_build(db, build_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Build não encontrado")
    return record


@router.get("/api/builds/{build_id}", response_model=BuildRequestOut)
def get_build(build_id: str, db: Session = Depends(get_db)):
    return _get_build_or_404(db, build_id)


@router.post("/api/builds/{build_id}/start", status_code=202)
def start_build(build_id: str, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    record = _get_build_or_404(db, build_id)
    if record.status != BUILD_PENDING:
        # idempotente: o claim do orquestrador é quem decide
        return {"status": "ignored", "build_status": record.status}
    background_tasks.add_task(run_build_in_background, record.id)
    return {"status": "scheduled", "build_id": record.id}


@router.post("/api/builds/{build_id}/retry", status_code=202)
def retry_build(build_id: str, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    record = _get_build_or_404(db, build_id)
    if not can_retry(record, default_build_policy()):
        raise HTTPException(
            status_code=409,
            detail=f"Build não pode ser reexecutado (status={record.status}, tentativas={record.attempts})",
        )
    background_tasks.add_task(run_build_in_background, record.id, retry=True)
    return {"status": "scheduled", "build_id": record.id}


@router.post("/internal/cleanup")
def cleanup(background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    result = CleanupResult()
    expire_stale_builds(
        db,
        get_hosting_provider(),
        max_age_seconds=config.BUILD_EXPIRE_AFTER_SECONDS,
        result=result,
    )
    policy = default_build_policy()
    reclaim_stuck_builds(
        db,
        older_than_seconds=policy.stuck_after_seconds(),
        max_retries=policy.max_retries,
        result=result,
        notifier=NotificationDispatcher(db),
    )
    for record in find_retryable_timeouts(db, max_retries=policy.max_retries):
        background_tasks.add_task(run_build_in_background, record.id, retry=True)
        result.requeued.append(record.id)
    return result.as_dict()


@router.get("/internal/metrics")
def metrics():
    return {"requests": request_metrics.snapshot(), "builds": build_metrics.snapshot()}
