"""Shared pytest fixtures for BranchReel tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from branchreel.db.connection import Database
from branchreel.history.router import get_history_service
from branchreel.history.service import HistoryService
from branchreel.main import app
from branchreel.nodes.store import NodeStore
from branchreel.trees.router import get_tree_service
from branchreel.trees.service import TreeService
from branchreel.users.router import get_user_service
from branchreel.users.service import UserService


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def node_store(db):
    return NodeStore(db)


@pytest.fixture
async def tree_service(db, node_store):
    return TreeService(db, node_store)


@pytest.fixture
async def history_service(db):
    return HistoryService(db)


@pytest.fixture
async def user_service(db, tree_service, history_service):
    return UserService(db, tree_service, history_service)


@pytest.fixture
async def client(tree_service, history_service, user_service):
    """Async test client with in-memory DB wired into the app."""
    app.dependency_overrides[get_tree_service] = lambda: tree_service
    app.dependency_overrides[get_history_service] = lambda: history_service
    app.dependency_overrides[get_user_service] = lambda: user_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
