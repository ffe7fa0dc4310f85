import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sitebot.models  # noqa: F401
from sitebot.core.database import Base
from sitebot.core.metrics import build_metrics


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sitebot_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_build_metrics():
    build_metrics.reset()
    yield
