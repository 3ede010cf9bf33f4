# tests/conftest.py
import os, pathlib, tempfile

# Point storage and logs at a scratch dir before anything imports newsfeed.*
_TMP = pathlib.Path(tempfile.mkdtemp(prefix="newsfeed-tests-"))
os.environ["DB_FILE"] = str(_TMP / "test.db")
os.environ["LOG_DIR"] = str(_TMP / "logs")
os.environ["OPENAI_API_KEY"] = ""  # analysis falls back to local defaults

import pytest


@pytest.fixture(autouse=True)
def db():
    from sqlmodel import SQLModel
    from newsfeed.store import engine, init_db
    SQLModel.metadata.drop_all(engine)
    init_db()
    yield engine


@pytest.fixture()
def storage():
    from newsfeed.store import Storage
    return Storage()


@pytest.fixture()
def make_article(storage):
    """Persist an article; keyword overrides win over sensible passing defaults."""
    from newsfeed.models import Article
    from newsfeed.utils import utc_now

    def _make(**kw):
        fields = dict(
            title="Central bank holds rates steady",
            url="https://example.com/a",
            source_name="Example Times",
            topic_tags=["Business"],
            content_quality=0.8,
            credibility=0.8,
            bias=0.4,
            sentiment=0.5,
            polarization=0.2,
            created_at=utc_now(),
        )
        fields.update(kw)
        return storage.save_article(Article(**fields))

    return _make


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient
    from newsfeed.main import app
    with TestClient(app) as c:
        yield c
