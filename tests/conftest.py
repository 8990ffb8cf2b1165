import pytest
from fastapi.testclient import TestClient

from chatbot.config import Settings
from chatbot.database.db import Database
from chatbot.main import create_app


@pytest.fixture(scope="function")
def db_path(tmp_path):
    return tmp_path / "data" / "chatbot.db"


@pytest.fixture(scope="function")
def db(db_path):
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture(scope="function")
def client(db_path):
    app = create_app(Settings(database_path=str(db_path)))
    # entering the client runs the lifespan, which opens storage
    with TestClient(app) as test_client:
        yield test_client
