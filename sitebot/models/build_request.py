from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func

from sitebot.core.database import Base


BUILD_PENDING = "pending"
BUILD_PROCESSING = "processing"
BUILD_COMPLETED = "completed"
BUILD_FAILED = "failed"
BUILD_TIMEOUT = "timeout"
BUILD_EXPIRED = "expired"

# status atual -> próximos permitidos
BUILD_TRANSITIONS: dict[str, tuple[str, ...]] = {
    BUILD_PENDING: (BUILD_PROCESSING,),
    BUILD_PROCESSING: (BUILD_COMPLETED, BUILD_FAILED, BUILD_TIMEOUT),
    BUILD_FAILED: (BUILD_PROCESSING, BUILD_EXPIRED),
    BUILD_TIMEOUT: (BUILD_PROCESSING, BUILD_EXPIRED),
    BUILD_COMPLETED: (BUILD_EXPIRED,),
    BUILD_EXPIRED: (),
}

ACTIVE_BUILD_STATUSES = (BUILD_PENDING, BUILD_PROCESSING)


def _new_build_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuildRequest(Base):
    __tablename__ = "build_requests"

    id = Column(String(32), primary_key=True, default=_new_build_id)
    user_id = Column(String, nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=BUILD_PENDING)
    intended_action = Column(String, nullable=False, default="create")

    # id da mensagem de origem; a constraint unique é o que garante a idempotência
    dedupe_key = Column(String, nullable=False, unique=True)

    hosting_slot_id = Column(String, nullable=True, index=True)
    result_url = Column(String, nullable=True, index=True)
    thumbnail_url = Column(String, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )


Index("ix_build_requests_user_status", BuildRequest.user_id, BuildRequest.status)
