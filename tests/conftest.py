import pytest

from shortener.app import create_app
from shortener.store import Deadline, UrlStore


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "urls.db")


@pytest.fixture
def store(db_path):
    store = UrlStore(db_path, max_connections=4, pool_timeout=2.0)
    store.create_schema()
    yield store
    store.dispose()


@pytest.fixture
def deadline():
    return Deadline(5.0)


@pytest.fixture
def app(db_path):
    app = create_app({"TESTING": True, "DB_PATH": db_path})
    yield app
    app.extensions["shortener.store"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()
