"""Node store: persistence for flat node records and tree-wide node reconciliation."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TypeVar
from uuid import uuid4

from branchreel.db.connection import Database, Transaction
from branchreel.errors import ForbiddenError, NodeNotFoundError, TreeNotFoundError
from branchreel.models import NodeInfo, VideoNode
from branchreel.trees.builder import InvalidTreeSubmissionError, NestedNode, flatten_tree
from branchreel.utils.json import model_json_or_none, parse_json_field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NodeStore:
    """Reads and writes rows of the nodes table.

    Mutating methods accept an open Transaction so callers can group node
    writes with their own; without one they open a transaction themselves.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def _in_transaction(
        self, tx: Transaction | None, work: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        if tx is not None:
            return await work(tx)
        async with self._db.transaction() as own_tx:
            return await work(own_tx)

    async def create_root(
        self, owner_id: str, tree_id: str, *, tx: Transaction | None = None,
    ) -> VideoNode:
        """Create the empty layer-0 node a new tree starts from."""
        root = VideoNode(
            node_id=str(uuid4()),
            tree_id=tree_id,
            parent_id=None,
            layer=0,
            info=None,
            creator=owner_id,
        )
        now = datetime.now(UTC).isoformat()

        async def work(t: Transaction) -> VideoNode:
            await t.execute(
                """
                INSERT INTO nodes
                    (node_id, tree_id, parent_id, layer, info, creator,
                     sort_order, created_at, updated_at)
                VALUES (?, ?, NULL, 0, NULL, ?, 0, ?, ?)
                """,
                (root.node_id, tree_id, owner_id, now, now),
            )
            return root

        return await self._in_transaction(tx, work)

    async def get_node(self, node_id: str) -> VideoNode:
        row = await self._db.fetchone("SELECT * FROM nodes WHERE node_id = ?", (node_id,))
        if row is None:
            raise NodeNotFoundError(node_id)
        return self._node_from_row(dict(row))

    async def get_nodes(self, tree_id: str) -> list[VideoNode]:
        """All nodes of a tree in stored order."""
        rows = await self._db.fetchall(
            "SELECT * FROM nodes WHERE tree_id = ? ORDER BY sort_order, created_at",
            (tree_id,),
        )
        return [self._node_from_row(dict(row)) for row in rows]

    async def update_by_tree(
        self,
        tree_id: str,
        root: NestedNode,
        editor_id: str,
        *,
        tx: Transaction | None = None,
    ) -> list[VideoNode]:
        """Make the stored node set of a tree match a submitted nested tree.

        Submitted nodes missing from storage are inserted, stored nodes missing
        from the submission are deleted, the rest are updated in place. The
        whole batch commits or rolls back together.
        """
        return await self._in_transaction(
            tx, lambda t: self._reconcile(t, tree_id, root, editor_id),
        )

    async def _reconcile(
        self, tx: Transaction, tree_id: str, root: NestedNode, editor_id: str,
    ) -> list[VideoNode]:
        tree = await tx.fetchone(
            "SELECT root_id, creator FROM trees WHERE tree_id = ?", (tree_id,),
        )
        if tree is None:
            raise TreeNotFoundError(tree_id)
        if tree["creator"] != editor_id:
            raise ForbiddenError("Not authorized to edit this video")
        if root.node_id != tree["root_id"]:
            raise InvalidTreeSubmissionError(
                "Submitted root does not match the video's root node",
                [root.node_id or ""],
            )

        submitted = flatten_tree(root, tree_id=tree_id, creator=tree["creator"])
        submitted_ids = [n.node_id for n in submitted]

        stored_rows = await tx.fetchall(
            "SELECT node_id FROM nodes WHERE tree_id = ?", (tree_id,),
        )
        stored_ids = {row["node_id"] for row in stored_rows}

        new_ids = [nid for nid in submitted_ids if nid not in stored_ids]
        if new_ids:
            placeholders = ", ".join("?" for _ in new_ids)
            foreign = await tx.fetchall(
                f"SELECT node_id FROM nodes WHERE node_id IN ({placeholders})",
                tuple(new_ids),
            )
            if foreign:
                raise InvalidTreeSubmissionError(
                    "Nodes belong to another video",
                    [row["node_id"] for row in foreign],
                )

        removed_ids = stored_ids - set(submitted_ids)
        now = datetime.now(UTC).isoformat()

        await tx.executemany(
            "DELETE FROM nodes WHERE node_id = ?",
            [(nid,) for nid in removed_ids],
        )
        await tx.executemany(
            """
            UPDATE nodes
            SET parent_id = ?, layer = ?, info = ?, creator = ?, sort_order = ?, updated_at = ?
            WHERE node_id = ?
            """,
            [
                (n.parent_id, n.layer, model_json_or_none(n.info), n.creator, i, now, n.node_id)
                for i, n in enumerate(submitted)
                if n.node_id in stored_ids
            ],
        )
        await tx.executemany(
            """
            INSERT INTO nodes
                (node_id, tree_id, parent_id, layer, info, creator,
                 sort_order, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (n.node_id, tree_id, n.parent_id, n.layer, model_json_or_none(n.info),
                 n.creator, i, now, now)
                for i, n in enumerate(submitted)
                if n.node_id not in stored_ids
            ],
        )

        logger.info(
            "Reconciled nodes for tree %s: %d inserted, %d updated, %d removed",
            tree_id, len(new_ids), len(submitted) - len(new_ids), len(removed_ids),
        )
        return submitted

    async def delete_by_root(
        self, root_id: str, owner_id: str, *, tx: Transaction | None = None,
    ) -> int:
        """Delete every node of the tree that ``root_id`` roots. Returns the count."""

        async def work(t: Transaction) -> int:
            root = await t.fetchone(
                "SELECT tree_id, parent_id, creator FROM nodes WHERE node_id = ?",
                (root_id,),
            )
            if root is None or root["parent_id"] is not None:
                raise NodeNotFoundError(root_id)
            if root["creator"] != owner_id:
                raise ForbiddenError("Not authorized to remove this video")
            cursor = await t.execute(
                "DELETE FROM nodes WHERE tree_id = ?", (root["tree_id"],),
            )
            return cursor.rowcount

        return await self._in_transaction(tx, work)

    async def delete_by_creator(
        self, owner_id: str, *, tx: Transaction | None = None,
    ) -> int:
        """Delete every node owned by an identity. Returns the count."""

        async def work(t: Transaction) -> int:
            cursor = await t.execute("DELETE FROM nodes WHERE creator = ?", (owner_id,))
            return cursor.rowcount

        return await self._in_transaction(tx, work)

    @staticmethod
    def _node_from_row(row: dict) -> VideoNode:
        info = parse_json_field(row["info"])
        return VideoNode(
            node_id=row["node_id"],
            tree_id=row["tree_id"],
            parent_id=row["parent_id"],
            layer=row["layer"],
            info=NodeInfo.model_validate(info) if info is not None else None,
            creator=row["creator"],
        )
