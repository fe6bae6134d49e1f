import pytest
from fastapi.testclient import TestClient

# Import app and the dependencies it resolves per request
from main import app, get_settings, get_storage

from settings import Settings
from storage import MemoryStorage, SqlStorage

TEST_SETTINGS = Settings(
    storage_backend="memory",
    seed_demo_data=False,
    unlock_price=20,
    boost_price=100,
    boost_duration_days=30,
    locked_preview_chars=100,
    log_format="console",
)


@pytest.fixture
def test_settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def sql_storage(tmp_path):
    """A SqlStorage on a throwaway SQLite file, tables created from models."""
    storage = SqlStorage.from_url(f"sqlite:///{tmp_path / 'kaamwala-test.db'}")
    yield storage
    storage.close()


@pytest.fixture(params=["memory", "sql"])
def storage(request):
    """Runs the test once per backend."""
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture
def test_client(storage, test_settings):
    """A test client whose requests all hit ``storage``."""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield TestClient(app)

    del app.dependency_overrides[get_storage]
    del app.dependency_overrides[get_settings]
