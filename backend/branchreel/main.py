"""BranchReel FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from branchreel.config import get_settings
from branchreel.db.connection import Database
from branchreel.history.router import get_history_service
from branchreel.history.router import router as history_router
from branchreel.history.service import HistoryService
from branchreel.nodes.store import NodeStore
from branchreel.trees.router import get_tree_service
from branchreel.trees.router import router as trees_router
from branchreel.trees.service import TreeService
from branchreel.users.router import get_user_service
from branchreel.users.router import router as users_router
from branchreel.users.service import UserService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = await Database.connect(settings.db_path)
    nodes = NodeStore(db)

    # Tree service
    tree_service = TreeService(db, nodes)
    app.dependency_overrides[get_tree_service] = lambda: tree_service

    # History service
    history_service = HistoryService(db)
    app.dependency_overrides[get_history_service] = lambda: history_service

    # User service (account removal cascades through the other two)
    user_service = UserService(db, tree_service, history_service)
    app.dependency_overrides[get_user_service] = lambda: user_service

    app.state.db = db
    logger.info("BranchReel started with database %s", settings.db_path)
    yield

    await db.close()


app = FastAPI(
    title="BranchReel",
    description="Branching interactive video trees: authoring, playback, and history",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trees_router)
app.include_router(history_router)
app.include_router(users_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
