"""Tests for composable tree queries: SQL assembly, stages, and paging."""

import pytest

from branchreel.history.schemas import UpsertHistoryRequest
from branchreel.trees.builder import NoRootError
from branchreel.trees.pipeline import (
    TreeQuery,
    all_nodes_stage,
    creator_info_stage,
    favorite_stage,
    fetch_one,
    fetch_page,
    history_stage,
    root_node_stage,
)
from tests.fixtures import CREATOR, VIEWER, create_complete_tree


class TestTreeQueryBuild:
    def test_match_clauses_are_anded(self):
        query = (
            TreeQuery()
            .match("t.creator = :creator_id", {"creator_id": "c"})
            .match("t.status = 'public'")
        )
        sql, params = query.build_one()
        assert "(t.creator = :creator_id) AND (t.status = 'public')" in sql
        assert params == {"creator_id": "c"}

    def test_no_filters_matches_everything(self):
        sql, _ = TreeQuery().build_one()
        assert "WHERE 1 = 1" in sql

    def test_only_one_node_stage(self):
        query = TreeQuery().pipe(root_node_stage())
        with pytest.raises(ValueError, match="already attaches nodes"):
            query.pipe(all_nodes_stage())

    def test_stages_keep_pipe_order(self):
        query = TreeQuery().pipe(root_node_stage(), creator_info_stage(), favorite_stage(None))
        assert [s.name for s in query.stages] == ["root_node", "creator_info", "favorite"]

    def test_shared_parameter_with_same_value(self):
        query = TreeQuery().pipe(favorite_stage(VIEWER), history_stage(VIEWER))
        _, params = query.build_one()
        assert params["viewer_id"] == VIEWER

    def test_conflicting_parameter_rejected(self):
        query = TreeQuery().pipe(favorite_stage(VIEWER))
        with pytest.raises(ValueError, match="viewer_id"):
            query.pipe(history_stage("someone-else"))

    def test_page_parameters(self):
        _, params = TreeQuery().build_page(3, 10)
        assert params["limit"] == 10
        assert params["offset"] == 20

    def test_page_must_be_positive(self):
        with pytest.raises(ValueError):
            TreeQuery().build_page(0, 10)

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValueError):
            TreeQuery().build_page(1, 0)


class TestFetch:
    async def test_fetch_one_with_all_nodes(self, db, tree_service):
        tree = await create_complete_tree(tree_service)
        query = (
            TreeQuery()
            .match("t.tree_id = :tree_id", {"tree_id": tree.tree_id})
            .pipe(all_nodes_stage())
        )
        row = await fetch_one(db, query)
        assert row["root"]["node_id"] == tree.root.node_id
        # Flat, in stored preorder, root excluded
        names = [n["info"]["name"] for n in row["root"]["children"]]
        assert names == ["left", "left-end", "right"]
        assert row["info"]["is_editing"] is False

    async def test_fetch_one_missing(self, db):
        query = TreeQuery().match("t.tree_id = :tree_id", {"tree_id": "nonexistent"})
        assert await fetch_one(db, query) is None

    async def test_all_nodes_without_root_row(self, db, tree_service):
        tree = await tree_service.create(CREATOR)
        await db.execute("DELETE FROM nodes WHERE tree_id = ?", (tree.tree_id,))
        query = (
            TreeQuery()
            .match("t.tree_id = :tree_id", {"tree_id": tree.tree_id})
            .pipe(all_nodes_stage())
        )
        with pytest.raises(NoRootError):
            await fetch_one(db, query)

    async def test_root_node_stage_has_no_children(self, db, tree_service):
        await create_complete_tree(tree_service)
        rows, count = await fetch_page(db, TreeQuery().pipe(root_node_stage()), 1, 10)
        assert count == 1
        assert rows[0]["root"]["children"] == []

    async def test_creator_info_without_profile(self, db, tree_service):
        await create_complete_tree(tree_service)
        rows, _ = await fetch_page(db, TreeQuery().pipe(creator_info_stage()), 1, 10)
        assert rows[0]["creator_info"] is None

    async def test_creator_info_with_profile(self, db, tree_service):
        await create_complete_tree(tree_service)
        await db.execute(
            "INSERT INTO users (user_id, name, picture, created_at, updated_at)"
            " VALUES (?, 'Ada', 'pic.png', 'now', 'now')",
            (CREATOR,),
        )
        await db.execute(
            "INSERT INTO subscriptions (channel_id, subscriber_id, created_at)"
            " VALUES (?, ?, 'now')",
            (CREATOR, VIEWER),
        )
        rows, _ = await fetch_page(db, TreeQuery().pipe(creator_info_stage()), 1, 10)
        assert rows[0]["creator_info"] == {
            "user_id": CREATOR, "name": "Ada", "picture": "pic.png", "subscribers": 1,
        }

    async def test_favorite_and_history_for_viewer(self, db, tree_service, history_service):
        tree = await create_complete_tree(tree_service)
        await tree_service.update_favorites(tree.tree_id, VIEWER)
        await history_service.upsert_progress(VIEWER, UpsertHistoryRequest(
            tree_id=tree.tree_id, active_node_id=tree.root.node_id,
            progress=5, total_progress=5,
        ))

        query = TreeQuery().pipe(favorite_stage(VIEWER), history_stage(VIEWER))
        rows, _ = await fetch_page(db, query, 1, 10)
        assert rows[0]["is_favorited"] is True
        assert rows[0]["history"]["active_node_id"] == tree.root.node_id

        anonymous = TreeQuery().pipe(favorite_stage(None), history_stage(None))
        rows, _ = await fetch_page(db, anonymous, 1, 10)
        assert rows[0]["is_favorited"] is False
        assert rows[0]["history"] is None


class TestFetchPage:
    async def test_pages_partition_matched_set(self, db, tree_service):
        for i in range(25):
            await tree_service.create(f"creator-{i % 3}")

        seen: list[str] = []
        sizes = []
        for page in (1, 2, 3):
            rows, count = await fetch_page(db, TreeQuery(), page, 10)
            assert count == 25
            sizes.append(len(rows))
            seen.extend(r["tree_id"] for r in rows)
        assert sizes == [10, 10, 5]
        assert len(set(seen)) == 25

    async def test_page_past_end_keeps_count(self, db, tree_service):
        for _ in range(3):
            await tree_service.create(CREATOR)
        rows, count = await fetch_page(db, TreeQuery(), 5, 10)
        assert rows == []
        assert count == 3

    async def test_empty_match(self, db):
        rows, count = await fetch_page(db, TreeQuery(), 1, 10)
        assert rows == []
        assert count == 0

    async def test_sort_order_applies(self, db, tree_service):
        first = await tree_service.create(CREATOR)
        second = await tree_service.create(CREATOR)
        await tree_service.increment_views(first.tree_id)

        rows, _ = await fetch_page(db, TreeQuery().sort("t.views DESC, t.tree_id"), 1, 10)
        assert [r["tree_id"] for r in rows] == [first.tree_id, second.tree_id]
