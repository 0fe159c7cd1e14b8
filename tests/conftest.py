# tests/conftest.py
import asyncio

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from summary_service.config import Settings
from summary_service.errors import ConflictError, InternalError
from summary_service.main import create_app

TEST_EMAIL = "a@x.com"
TEST_PASSWORD = "p1"
TEST_FIRSTNAME = "A"


class FakeCredentialStore:
    """Credential store en memoria con la misma interfaz que MongoCredentialStore."""

    def __init__(self):
        self.users = {}
        self.find_calls = 0
        self.insert_calls = 0
        self.opened = False
        self.closed = False
        self.healthy = True
        self.fail_with = None
        self.ping_delay = 0

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True

    async def ping(self):
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        return self.healthy

    async def find_by_email(self, email):
        self.find_calls += 1
        if self.fail_with:
            raise self.fail_with
        user = self.users.get(email)
        return dict(user) if user else None

    async def insert_user(self, document):
        self.insert_calls += 1
        if document["email"] in self.users:
            raise ConflictError()
        saved = dict(document, _id=ObjectId())
        self.users[document["email"]] = saved
        return dict(saved)


class FakeCallSummaryReader:
    def __init__(self, rows=None):
        self.rows = rows if rows is not None else []
        self.healthy = True
        self.fail = False
        self.fetch_delay = 0
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True

    async def ping(self):
        return self.healthy

    async def fetch_call_summary(self):
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fail:
            raise InternalError("Failed to fetch call summary data")
        return [dict(row) for row in self.rows]


@pytest.fixture
def settings():
    return Settings(
        mongodb_uri="mongodb://localhost:27017/test",
        pg_user="test",
        pg_password="test",
        pg_host="localhost",
        pg_database="test",
        bcrypt_rounds=4,
    )


@pytest.fixture
def credential_store():
    return FakeCredentialStore()


@pytest.fixture
def call_summary_reader():
    return FakeCallSummaryReader(rows=[
        {"id": 1, "agent": "Ana", "duration": 120, "summary": "Consulta de saldo"},
        {"id": 2, "agent": "Luis", "duration": 45, "summary": "Cambio de plan"},
    ])


@pytest.fixture
def client(settings, credential_store, call_summary_reader):
    app = create_app(settings, credential_store=credential_store, call_summary_reader=call_summary_reader)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registered_user(client):
    """Registra el usuario de prueba y devuelve el cuerpo de la respuesta."""
    payload = {"email": TEST_EMAIL, "password": TEST_PASSWORD, "firstname": TEST_FIRSTNAME}
    r = client.post("/api/users", json=payload)
    assert r.status_code == 201, r.text
    return r.json()
