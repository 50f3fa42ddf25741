"""Tree service: video tree lifecycle, retrieval, favorites, and view counts.

Node rows are owned by NodeStore; this service keeps the trees table and
orchestrates node writes inside its own transactions. Reads go through the
retrieval pipeline and are nested by the tree builder.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from branchreel.db.connection import Database
from branchreel.errors import ForbiddenError, TreeCorruptedError, TreeNotFoundError
from branchreel.history.service import reset_detached_histories
from branchreel.models import VideoNode
from branchreel.nodes.store import NodeStore
from branchreel.trees.builder import TreeStructureError, build_tree
from branchreel.trees.pipeline import (
    Row,
    TreeQuery,
    all_nodes_stage,
    creator_info_stage,
    favorite_stage,
    fetch_one,
    fetch_page,
    history_stage,
    root_node_stage,
)
from branchreel.trees.schemas import (
    FavoriteToggleResponse,
    TreeClientResponse,
    TreeDetailResponse,
    TreeListItem,
    TreeListResponse,
    UpdateTreeRequest,
)
from branchreel.trees.validator import tree_is_editing

logger = logging.getLogger(__name__)

Visibility = Literal["any", "public", "creator"]

CLIENT_VISIBLE = "t.status = 'public' AND t.is_editing = 0"


class TreeService:
    """Coordinates the trees table with the node store for tree CRUD and reads."""

    def __init__(self, db: Database, nodes: NodeStore | None = None) -> None:
        self._db = db
        self._nodes = nodes or NodeStore(db)

    # -- Lifecycle --

    async def create(self, user_id: str) -> TreeDetailResponse:
        """Create a tree owned by ``user_id`` with a single empty root node."""
        tree_id = str(uuid4())
        now = datetime.now(UTC).isoformat()

        async with self._db.transaction() as tx:
            root = await self._nodes.create_root(user_id, tree_id, tx=tx)
            await tx.execute(
                """
                INSERT INTO trees
                    (tree_id, root_id, title, description, creator, status,
                     is_editing, views, created_at, updated_at)
                VALUES (?, ?, NULL, NULL, ?, 'public', 1, 0, ?, ?)
                """,
                (tree_id, root.node_id, user_id, now, now),
            )

        logger.info("Created tree %s for %s", tree_id, user_id)
        return await self.find_one(tree_id)

    async def update(
        self, tree_id: str, request: UpdateTreeRequest, user_id: str,
    ) -> TreeDetailResponse:
        """Replace a tree's info and node set with an edited version.

        Only the creator may edit, and the submitted creator must match the
        stored one. is_editing is recomputed from the submission.
        """
        async with self._db.transaction() as tx:
            tree = await tx.fetchone(
                "SELECT root_id, creator FROM trees WHERE tree_id = ?", (tree_id,),
            )
            if tree is None:
                raise TreeNotFoundError(tree_id)
            if request.info.creator != tree["creator"] or user_id != tree["creator"]:
                logger.warning(
                    "Rejected edit of tree %s by %s (submitted creator %s)",
                    tree_id, user_id, request.info.creator,
                )
                raise ForbiddenError("Not authorized to edit this video")

            await self._nodes.update_by_tree(tree_id, request.root, user_id, tx=tx)
            is_editing = tree_is_editing(request.info.title, request.root)
            await tx.execute(
                """
                UPDATE trees
                SET title = ?, description = ?, status = ?, is_editing = ?, updated_at = ?
                WHERE tree_id = ?
                """,
                (
                    request.info.title,
                    request.info.description,
                    request.info.status,
                    int(is_editing),
                    datetime.now(UTC).isoformat(),
                    tree_id,
                ),
            )
            await reset_detached_histories(tx, tree_id, tree["root_id"])

        return await self.find_one(tree_id)

    async def remove(self, tree_id: str, user_id: str) -> None:
        """Delete a tree and all of its nodes. Creator only."""
        async with self._db.transaction() as tx:
            tree = await tx.fetchone(
                "SELECT root_id, creator FROM trees WHERE tree_id = ?", (tree_id,),
            )
            if tree is None:
                raise TreeNotFoundError(tree_id)
            if tree["creator"] != user_id:
                raise ForbiddenError("Not authorized to remove this video")

            removed = await self._nodes.delete_by_root(tree["root_id"], user_id, tx=tx)
            await tx.execute("DELETE FROM trees WHERE tree_id = ?", (tree_id,))

        logger.info("Removed tree %s with %d nodes", tree_id, removed)

    async def delete_by_creator(self, user_id: str) -> int:
        """Remove every tree and node an account owns. Returns the tree count."""
        async with self._db.transaction() as tx:
            node_count = await self._nodes.delete_by_creator(user_id, tx=tx)
            cursor = await tx.execute("DELETE FROM trees WHERE creator = ?", (user_id,))
            tree_count = cursor.rowcount

        logger.info(
            "Deleted %d trees and %d nodes owned by %s", tree_count, node_count, user_id,
        )
        return tree_count

    # -- Single tree reads --

    async def find_one(self, tree_id: str) -> TreeDetailResponse:
        row = await self._retrieve(tree_id)
        return TreeDetailResponse.model_validate(row)

    async def find_client_one(
        self, tree_id: str, user_id: str | None = None,
    ) -> TreeClientResponse:
        """A tree as a viewer sees it, with creator, favorite, and history attached."""
        row = await self._retrieve(
            tree_id, viewer_id=user_id, visibility="public", client_view=True,
        )
        return TreeClientResponse.model_validate(row)

    async def find_one_by_creator(self, tree_id: str, user_id: str) -> TreeDetailResponse:
        """A tree for its creator's editor. Anyone else is refused."""
        row = await self._retrieve(tree_id, viewer_id=user_id, visibility="creator")
        return TreeDetailResponse.model_validate(row)

    async def _retrieve(
        self,
        tree_id: str,
        *,
        viewer_id: str | None = None,
        visibility: Visibility = "any",
        client_view: bool = False,
    ) -> Row:
        query = (
            TreeQuery()
            .match("t.tree_id = :tree_id", {"tree_id": tree_id})
            .pipe(all_nodes_stage())
        )
        if client_view:
            query.pipe(
                creator_info_stage(),
                favorite_stage(viewer_id),
                history_stage(viewer_id),
            )

        try:
            return await self._load_nested(query, tree_id, viewer_id, visibility)
        except TreeStructureError as e:
            # Reads share the connection with writers and may catch an edit
            # half applied. Wait for it to commit before calling the tree corrupt.
            logger.debug("Tree %s did not nest (%s), re-reading after pending writes", tree_id, e)

        async with self._db.settled():
            try:
                return await self._load_nested(query, tree_id, viewer_id, visibility)
            except TreeStructureError as e:
                logger.error(
                    "Tree %s has a corrupted node set: %s (node ids: %s)",
                    tree_id, e, e.node_ids,
                )
                raise TreeCorruptedError(tree_id, e.node_ids) from e

    async def _load_nested(
        self, query: TreeQuery, tree_id: str, viewer_id: str | None, visibility: Visibility,
    ) -> Row:
        row = await fetch_one(self._db, query)
        if row is None:
            raise TreeNotFoundError(tree_id)
        self._check_visibility(row, viewer_id, visibility)
        root = row["root"]
        flat = [
            VideoNode.model_validate(n)
            for n in [root, *root["children"]]
        ]
        row["root"] = build_tree(flat)
        return row

    @staticmethod
    def _check_visibility(row: Row, viewer_id: str | None, visibility: Visibility) -> None:
        is_creator = viewer_id is not None and viewer_id == row["info"]["creator"]
        if visibility == "creator" and not is_creator:
            raise ForbiddenError("Not authorized to this video")
        if visibility == "public" and not is_creator:
            if row["info"]["status"] != "public" or row["info"]["is_editing"]:
                raise ForbiddenError("Not authorized to video")

    # -- Listing --

    async def find(
        self,
        query: TreeQuery,
        *,
        page: int = 1,
        page_size: int = 12,
        user_id: str | None = None,
        include_history: bool = True,
    ) -> TreeListResponse:
        """Run a list query with the list-view stages attached."""
        query.pipe(root_node_stage(), creator_info_stage(), favorite_stage(user_id))
        if include_history:
            query.pipe(history_stage(user_id))
        rows, count = await fetch_page(self._db, query, page, page_size)
        for row in rows:
            if row["root"] is None:
                logger.error("Tree %s is missing its root node", row["tree_id"])
        return TreeListResponse(
            videos=[TreeListItem.model_validate(r) for r in rows],
            count=count,
        )

    async def find_by_creator(
        self, creator_id: str, page: int, page_size: int,
    ) -> TreeListResponse:
        """All of a creator's trees, drafts and private ones included."""
        query = TreeQuery().match("t.creator = :creator_id", {"creator_id": creator_id})
        return await self.find(
            query, page=page, page_size=page_size, include_history=False,
        )

    async def find_client(
        self,
        query: TreeQuery,
        *,
        page: int,
        page_size: int,
        user_id: str | None = None,
    ) -> TreeListResponse:
        """List only trees that are public and finished."""
        query.match(CLIENT_VISIBLE)
        return await self.find(query, page=page, page_size=page_size, user_id=user_id)

    async def find_client_featured(
        self, page: int, page_size: int, user_id: str | None = None,
    ) -> TreeListResponse:
        query = TreeQuery().sort("t.updated_at DESC, t.tree_id DESC")
        return await self.find_client(query, page=page, page_size=page_size, user_id=user_id)

    async def find_client_by_keyword(
        self, keyword: str, page: int, page_size: int, user_id: str | None = None,
    ) -> TreeListResponse:
        """Full-text search over titles and descriptions, best match first."""
        fts_query = self._sanitize_query(keyword)
        if not fts_query:
            return TreeListResponse(videos=[], count=0)
        query = (
            TreeQuery()
            .match(
                "trees_fts MATCH :keyword",
                {"keyword": fts_query},
                joins=("JOIN trees_fts ON trees_fts.rowid = t.rowid",),
                columns=("trees_fts.rank AS score",),
            )
            .sort("t.score ASC, t.tree_id DESC")
        )
        return await self.find_client(query, page=page, page_size=page_size, user_id=user_id)

    async def find_client_by_channel(
        self, channel_id: str, page: int, page_size: int, user_id: str | None = None,
    ) -> TreeListResponse:
        query = TreeQuery().match("t.creator = :channel_id", {"channel_id": channel_id})
        return await self.find_client(query, page=page, page_size=page_size, user_id=user_id)

    async def find_client_by_ids(
        self, ids: list[str], user_id: str | None = None,
    ) -> TreeListResponse:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return TreeListResponse(videos=[], count=0)
        params: dict[str, Any] = {f"id_{i}": tree_id for i, tree_id in enumerate(unique_ids)}
        placeholders = ", ".join(f":{key}" for key in params)
        query = TreeQuery().match(f"t.tree_id IN ({placeholders})", params)
        return await self.find_client(
            query, page=1, page_size=len(unique_ids), user_id=user_id,
        )

    async def find_client_by_favorites(
        self, user_id: str, page: int, page_size: int,
    ) -> TreeListResponse:
        query = TreeQuery().match(
            "t.tree_id IN (SELECT tree_id FROM tree_favorites WHERE user_id = :favorites_of)",
            {"favorites_of": user_id},
        )
        return await self.find_client(query, page=page, page_size=page_size, user_id=user_id)

    # -- Counters --

    async def update_favorites(self, tree_id: str, user_id: str) -> FavoriteToggleResponse:
        """Toggle the viewer's membership in the tree's favorites."""
        now = datetime.now(UTC).isoformat()
        async with self._db.transaction() as tx:
            tree = await tx.fetchone("SELECT tree_id FROM trees WHERE tree_id = ?", (tree_id,))
            if tree is None:
                raise TreeNotFoundError(tree_id)
            cursor = await tx.execute(
                "DELETE FROM tree_favorites WHERE tree_id = ? AND user_id = ?",
                (tree_id, user_id),
            )
            is_favorited = cursor.rowcount == 0
            if is_favorited:
                await tx.execute(
                    "INSERT INTO tree_favorites (tree_id, user_id, created_at) VALUES (?, ?, ?)",
                    (tree_id, user_id, now),
                )
            rows = await tx.fetchall(
                "SELECT user_id FROM tree_favorites WHERE tree_id = ? ORDER BY created_at",
                (tree_id,),
            )

        return FavoriteToggleResponse(
            tree_id=tree_id,
            is_favorited=is_favorited,
            favorites=[row["user_id"] for row in rows],
        )

    async def increment_views(self, tree_id: str) -> int:
        """Add one view. Returns the new count."""
        cursor = await self._db.execute(
            "UPDATE trees SET views = views + 1 WHERE tree_id = ?", (tree_id,),
        )
        if cursor.rowcount == 0:
            raise TreeNotFoundError(tree_id)
        row = await self._db.fetchone("SELECT views FROM trees WHERE tree_id = ?", (tree_id,))
        assert row is not None
        return row["views"]

    @staticmethod
    def _sanitize_query(raw: str) -> str:
        """Escape user input for safe FTS5 querying.

        Splits into words, double-quotes each (prevents FTS5 operator injection).
        Result is implicit AND: all terms must be present.
        """
        words = raw.strip().split()
        if not words:
            return ""
        return " ".join('"{}"'.format(w.replace('"', '""')) for w in words)
