import json
import logging

import pytest

from sitebot.core import config
from sitebot.core.logging_setup import JsonFormatter
from sitebot.core.request_context import clear_request_context, set_request_context
from sitebot.core.startup_checks import ensure_migrations_applied, validate_database_environment


def _record(message, *args, **extra):
    record = logging.LogRecord("sitebot.test", logging.INFO, __file__, 1, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context_and_masks_secrets():
    set_request_context(request_id="req-1", user_id="5511", build_id="b-1")
    try:
        line = JsonFormatter("%(message)s").format(
            _record("Authorization: Bearer abc.def token=xyz", phase="deployment", attempt=2)
        )
    finally:
        clear_request_context()

    payload = json.loads(line)
    assert payload["request_id"] == "req-1"
    assert payload["user_id"] == "5511"
    assert payload["build_id"] == "b-1"
    assert payload["phase"] == "deployment"
    assert payload["attempt"] == 2
    assert "abc.def" not in payload["message"]
    assert "xyz" not in payload["message"]


def test_json_formatter_prefers_explicit_extras():
    set_request_context(request_id="req-ctx")
    try:
        payload = json.loads(JsonFormatter("%(message)s").format(_record("ok", request_id="req-extra")))
    finally:
        clear_request_context()

    assert payload["request_id"] == "req-extra"
    assert "phase" not in payload


def test_sqlite_is_forbidden_in_production(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", True)
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///./sitebot.db")

    with pytest.raises(RuntimeError, match="SQLite is forbidden"):
        validate_database_environment()


def test_sqlite_is_allowed_outside_production(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", False)
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///./sitebot.db")

    validate_database_environment()


def test_migration_check_is_skipped_for_sqlite(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///./sitebot.db")

    ensure_migrations_applied(engine=None, alembic_config_path=tmp_path / "missing.ini")


def test_migration_check_requires_alembic_config(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "ENV_NORMALIZED", "prod")
    monkeypatch.setattr(config, "DATABASE_URL", "postgresql://user:pass@db/sitebot")

    with pytest.raises(RuntimeError, match="alembic config not found"):
        ensure_migrations_applied(engine=None, alembic_config_path=tmp_path / "missing.ini")
