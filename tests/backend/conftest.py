import asyncio
import os
import uuid

import pytest
import pytest_asyncio
from tortoise import Tortoise

TEST_DB_URL = "sqlite://:memory:"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["LOG_FILE"] = ""

from gibber.config import Settings
from gibber.core import db as db_module
from gibber.core.channel import LineChannel
from gibber.services.stores import Stores

db_module.DB_URL = TEST_DB_URL
db_module.TORTOISE_ORM["connections"]["default"] = TEST_DB_URL

DEFAULT_PASSWORD = "secret1"


class FakeWriter:
    """
    Stand-in for asyncio.StreamWriter that records everything written.
    Set fail=True to make writes raise like a reset connection.
    """

    def __init__(self, fail: bool = False):
        self.buffer = bytearray()
        self.fail = fail
        self.closed = False

    def write(self, data: bytes):
        if self.fail or self.closed:
            raise ConnectionResetError("connection reset by peer")
        self.buffer.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return ("127.0.0.1", 50000)
        return default

    @property
    def text(self) -> str:
        return self.buffer.decode("utf-8")


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await db_module.close_db()
    await db_module.init_db(generate_schemas=True)


@pytest_asyncio.fixture
async def db():
    """Fresh database for one test."""
    await _init_test_db()
    yield
    await db_module.close_db()


@pytest_asyncio.fixture
async def stores(db) -> Stores:
    return Stores.create()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a fast poll interval."""
    return Settings(poll_interval_ms=20)


@pytest.fixture
def make_channel():
    """
    Factory fixture: a LineChannel whose client side is a pre-fed script.

    The reader is fed every line of the script followed by EOF, so a session
    that asks for more input than scripted ends with a transport failure.
    Must be called inside a running event loop.
    """

    def _make_channel(lines=(), eof: bool = True, fail_writes: bool = False):
        reader = asyncio.StreamReader()
        for line in lines:
            reader.feed_data((line + "\n").encode("utf-8"))
        if eof:
            reader.feed_eof()
        writer = FakeWriter(fail=fail_writes)
        return LineChannel(reader, writer), writer

    return _make_channel


@pytest_asyncio.fixture
async def create_user(stores):
    """
    Factory fixture to register users through the relationship workflow.
    """

    async def _create_user(first_name: str = "Test", last_name: str = "User", email: str | None = None,
                           password: str = DEFAULT_PASSWORD, logged_in: bool = True):
        email = email or f"{uuid.uuid4().hex[:8]}@example.com"
        user = await stores.workflow.register(first_name, last_name, email, password)
        if not logged_in:
            await stores.credentials.set_logged_in(user.id, False)
            user.logged_in = False
        return user

    return _create_user


@pytest_asyncio.fixture
async def befriend(stores):
    """Factory fixture: make two users friends via invite + accept."""

    async def _befriend(user_a, user_b):
        await stores.workflow.send_invitation(user_a, user_b)
        await stores.workflow.accept_invitation(user_b, user_a.id)

    return _befriend
