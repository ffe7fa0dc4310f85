from datetime import datetime, timedelta, timezone

import pytest

from sitebot.core.errors import InvalidTransition
from sitebot.models.build_request import (
    BUILD_COMPLETED,
    BUILD_FAILED,
    BUILD_PENDING,
    BUILD_PROCESSING,
    BuildRequest,
)
from sitebot.services import build_requests


def _create(db, dedupe_key="wamid.1", **kwargs):
    values = {"user_id": "5511999990000", "prompt": "Quero um site para minha padaria"}
    values.update(kwargs)
    record, _created = build_requests.create_build_request(db, dedupe_key=dedupe_key, **values)
    return record


def test_duplicate_dedupe_key_returns_existing_record(db_session):
    first, created_first = build_requests.create_build_request(
        db_session, user_id="u1", prompt="Site de padaria", dedupe_key="wamid.A"
    )
    second, created_second = build_requests.create_build_request(
        db_session, user_id="u1", prompt="Site de padaria", dedupe_key="wamid.A"
    )

    assert created_first is True
    assert created_second is False
    assert second.id == first.id
    assert db_session.query(BuildRequest).count() == 1


def test_concurrent_duplicate_delivery_creates_single_row(session_factory, monkeypatch):
    db_a = session_factory()
    db_b = session_factory()
    try:
        original, _ = build_requests.create_build_request(
            db_a, user_id="u1", prompt="Site de padaria", dedupe_key="wamid.race"
        )

        # simula a segunda entrega passando pela checagem prévia antes do commit da primeira
        real_lookup = build_requests.get_by_dedupe_key
        calls = {"count": 0}

        def _lookup(db, key):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return real_lookup(db, key)

        monkeypatch.setattr(build_requests, "get_by_dedupe_key", _lookup)

        duplicate, created = build_requests.create_build_request(
            db_b, user_id="u1", prompt="Site de padaria", dedupe_key="wamid.race"
        )

        assert created is False
        assert duplicate.id == original.id
        assert db_b.query(BuildRequest).count() == 1
    finally:
        db_a.close()
        db_b.close()


def test_claim_succeeds_only_once_across_workers(session_factory):
    db_a = session_factory()
    db_b = session_factory()
    try:
        record = _create(db_a)

        won_a = build_requests.try_transition(
            db_a, record.id, BUILD_PROCESSING, from_statuses=(BUILD_PENDING,), increment_attempts=True
        )
        won_b = build_requests.try_transition(
            db_b, record.id, BUILD_PROCESSING, from_statuses=(BUILD_PENDING,), increment_attempts=True
        )

        db_a.refresh(record)
        assert won_a is True
        assert won_b is False
        assert record.status == BUILD_PROCESSING
        assert record.attempts == 1
    finally:
        db_a.close()
        db_b.close()


def test_try_transition_rejects_moves_outside_the_table(db_session):
    record = _create(db_session)

    with pytest.raises(InvalidTransition):
        build_requests.try_transition(db_session, record.id, BUILD_COMPLETED, from_statuses=(BUILD_PENDING,))


def test_transition_raises_when_status_changed_underneath(session_factory):
    db_a = session_factory()
    db_b = session_factory()
    try:
        record = _create(db_a)
        # outro worker move o build enquanto db_a ainda o vê como pending
        build_requests.try_transition(db_b, record.id, BUILD_PROCESSING, from_statuses=(BUILD_PENDING,))
        build_requests.try_transition(db_b, record.id, BUILD_FAILED, from_statuses=(BUILD_PROCESSING,))

        with pytest.raises(InvalidTransition):
            build_requests.transition(db_a, record, BUILD_PROCESSING)
        assert record.status == BUILD_FAILED
    finally:
        db_a.close()
        db_b.close()


def test_hosting_slot_is_written_once(db_session):
    record = _create(db_session)

    build_requests.assign_hosting_slot(db_session, record, "site-111")
    build_requests.assign_hosting_slot(db_session, record, "site-222")

    assert record.hosting_slot_id == "site-111"


def test_latest_slot_for_user_uses_completed_builds_only(db_session):
    done = _create(db_session, dedupe_key="wamid.1", hosting_slot_id="site-old")
    _create(db_session, dedupe_key="wamid.2", hosting_slot_id="site-pending")
    build_requests.try_transition(db_session, done.id, BUILD_PROCESSING)
    build_requests.try_transition(db_session, done.id, BUILD_COMPLETED)

    assert build_requests.latest_slot_for_user(db_session, "5511999990000") == "site-old"
    assert build_requests.latest_slot_for_user(db_session, "someone-else") is None


def test_find_fresh_thumbnail_respects_max_age(db_session):
    record = _create(db_session)
    build_requests.try_transition(db_session, record.id, BUILD_PROCESSING)
    build_requests.try_transition(
        db_session,
        record.id,
        BUILD_COMPLETED,
        values={"result_url": "https://site-1.vercel.app", "thumbnail_url": "https://cdn.test/t.jpg"},
    )

    now = datetime.now(timezone.utc)
    fresh = build_requests.find_fresh_thumbnail(
        db_session, "https://site-1.vercel.app", max_age_seconds=3600, now=now
    )
    stale = build_requests.find_fresh_thumbnail(
        db_session, "https://site-1.vercel.app", max_age_seconds=3600, now=now + timedelta(hours=2)
    )
    other = build_requests.find_fresh_thumbnail(
        db_session, "https://outro.vercel.app", max_age_seconds=3600, now=now
    )

    assert fresh == "https://cdn.test/t.jpg"
    assert stale is None
    assert other is None


def test_has_active_sibling(db_session):
    first = _create(db_session, dedupe_key="wamid.1", hosting_slot_id="site-x")
    second = _create(db_session, dedupe_key="wamid.2", hosting_slot_id="site-x")

    assert build_requests.has_active_sibling(db_session, "site-x", exclude_id=first.id) is True

    build_requests.try_transition(db_session, second.id, BUILD_PROCESSING)
    build_requests.try_transition(db_session, second.id, BUILD_COMPLETED)

    assert build_requests.has_active_sibling(db_session, "site-x", exclude_id=first.id) is False


def test_truncate_error_limits_length():
    assert len(build_requests.truncate_error("x" * 2000)) == build_requests.MAX_ERROR_LENGTH
    assert build_requests.truncate_error(None) is None
