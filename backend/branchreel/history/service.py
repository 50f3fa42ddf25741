"""History service: per-viewer playback position and progress within a tree."""

import logging
from datetime import UTC, datetime
from uuid import uuid4

from branchreel.db.connection import Database, Transaction
from branchreel.errors import HistoryNotFoundError, NodeNotFoundError, TreeNotFoundError
from branchreel.history.schemas import HistoryResponse, UpsertHistoryRequest
from branchreel.trees.pipeline import (
    TreeQuery,
    creator_info_stage,
    fetch_page,
    favorite_stage,
    history_stage,
    root_node_stage,
)
from branchreel.trees.schemas import TreeListItem, TreeListResponse

logger = logging.getLogger(__name__)


class HistoryService:
    """Creates and reads one history record per (viewer, tree)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def upsert_progress(
        self, user_id: str, request: UpsertHistoryRequest,
    ) -> HistoryResponse:
        """Record where a viewer is. Creates the record on first call, updates after.

        The tree and node checks share the write transaction with the insert,
        so an edit cannot remove the active node in between.
        """
        now = datetime.now(UTC).isoformat()
        async with self._db.transaction() as tx:
            tree = await tx.fetchone(
                "SELECT tree_id FROM trees WHERE tree_id = ?", (request.tree_id,),
            )
            if tree is None:
                raise TreeNotFoundError(request.tree_id)

            node = await tx.fetchone(
                "SELECT tree_id FROM nodes WHERE node_id = ?", (request.active_node_id,),
            )
            if node is None or node["tree_id"] != request.tree_id:
                raise NodeNotFoundError(request.active_node_id)

            await tx.execute(
                """
                INSERT INTO histories
                    (history_id, user_id, tree_id, active_node_id, progress,
                     total_progress, is_ended, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, tree_id) DO UPDATE SET
                    active_node_id = excluded.active_node_id,
                    progress = excluded.progress,
                    total_progress = excluded.total_progress,
                    is_ended = excluded.is_ended,
                    updated_at = excluded.updated_at
                """,
                (
                    str(uuid4()),
                    user_id,
                    request.tree_id,
                    request.active_node_id,
                    request.progress,
                    request.total_progress,
                    int(request.is_ended),
                    now,
                    now,
                ),
            )
            row = await tx.fetchone(
                "SELECT * FROM histories WHERE user_id = ? AND tree_id = ?",
                (user_id, request.tree_id),
            )
        return self._history_from_row(dict(row))

    async def find_by_viewer_and_tree(self, user_id: str, tree_id: str) -> HistoryResponse:
        row = await self._db.fetchone(
            "SELECT * FROM histories WHERE user_id = ? AND tree_id = ?",
            (user_id, tree_id),
        )
        if row is None:
            raise HistoryNotFoundError(user_id, tree_id)
        return self._history_from_row(dict(row))

    async def find_by_viewer(
        self, user_id: str, page: int, page_size: int,
    ) -> TreeListResponse:
        """Trees the viewer has started, most recently watched first."""
        query = (
            TreeQuery()
            .match(
                "(t.status = 'public' AND t.is_editing = 0) OR t.creator = :history_user_id",
                {"history_user_id": user_id},
                joins=(
                    "JOIN histories watched ON watched.tree_id = t.tree_id"
                    " AND watched.user_id = :history_user_id",
                ),
                columns=("watched.updated_at AS watched_at",),
            )
            .sort("t.watched_at DESC, t.tree_id DESC")
            .pipe(
                root_node_stage(),
                creator_info_stage(),
                favorite_stage(user_id),
                history_stage(user_id),
            )
        )
        rows, count = await fetch_page(self._db, query, page, page_size)
        return TreeListResponse(
            videos=[TreeListItem.model_validate(r) for r in rows],
            count=count,
        )

    async def remove(self, user_id: str, tree_id: str) -> None:
        cursor = await self._db.execute(
            "DELETE FROM histories WHERE user_id = ? AND tree_id = ?",
            (user_id, tree_id),
        )
        if cursor.rowcount == 0:
            raise HistoryNotFoundError(user_id, tree_id)

    async def delete_by_user(self, user_id: str) -> int:
        cursor = await self._db.execute(
            "DELETE FROM histories WHERE user_id = ?", (user_id,),
        )
        return cursor.rowcount

    @staticmethod
    def _history_from_row(row: dict) -> HistoryResponse:
        return HistoryResponse(
            history_id=row["history_id"],
            user_id=row["user_id"],
            tree_id=row["tree_id"],
            active_node_id=row["active_node_id"],
            progress=row["progress"],
            total_progress=row["total_progress"],
            is_ended=bool(row["is_ended"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


async def reset_detached_histories(tx: Transaction, tree_id: str, root_id: str) -> int:
    """Send viewers whose active node was deleted back to the root.

    Runs inside the tree edit's transaction. Returns the number of records reset.
    """
    cursor = await tx.execute(
        """
        UPDATE histories
        SET active_node_id = ?, progress = 0, total_progress = 0, is_ended = 0, updated_at = ?
        WHERE tree_id = ?
          AND active_node_id NOT IN (SELECT node_id FROM nodes WHERE tree_id = ?)
        """,
        (root_id, datetime.now(UTC).isoformat(), tree_id, tree_id),
    )
    if cursor.rowcount:
        logger.info("Reset %d histories on tree %s to the root node", cursor.rowcount, tree_id)
    return cursor.rowcount
