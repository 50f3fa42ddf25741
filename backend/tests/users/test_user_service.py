"""Integration tests for profiles, subscriptions, and account removal."""

import pytest

from branchreel.errors import ForbiddenError, TreeNotFoundError, UserNotFoundError
from branchreel.history.schemas import UpsertHistoryRequest
from branchreel.users.schemas import SaveProfileRequest
from tests.fixtures import CREATOR, VIEWER, create_complete_tree


class TestProfile:
    async def test_save_creates_then_updates(self, user_service):
        created = await user_service.save_profile(
            CREATOR, SaveProfileRequest(name="Ada", email="ada@example.com"),
        )
        assert created.name == "Ada"

        updated = await user_service.save_profile(
            CREATOR, SaveProfileRequest(name="Ada L.", picture="pic.png"),
        )
        assert updated.name == "Ada L."
        assert updated.picture == "pic.png"
        assert updated.created_at == created.created_at

    async def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            SaveProfileRequest(name="")


class TestChannel:
    async def test_get_channel(self, user_service):
        await user_service.save_profile(CREATOR, SaveProfileRequest(name="Ada"))
        channel = await user_service.get_channel(CREATOR)
        assert channel.channel_id == CREATOR
        assert channel.name == "Ada"
        assert channel.subscribers == 0
        assert channel.is_subscribed is False

    async def test_missing_channel(self, user_service):
        with pytest.raises(UserNotFoundError):
            await user_service.get_channel("nonexistent")

    async def test_toggle_subscription(self, user_service):
        await user_service.save_profile(CREATOR, SaveProfileRequest(name="Ada"))

        subscribed = await user_service.toggle_subscription(CREATOR, VIEWER)
        assert subscribed.subscribers == 1
        assert subscribed.is_subscribed is True

        unsubscribed = await user_service.toggle_subscription(CREATOR, VIEWER)
        assert unsubscribed.subscribers == 0
        assert unsubscribed.is_subscribed is False

    async def test_cannot_subscribe_to_self(self, user_service):
        await user_service.save_profile(CREATOR, SaveProfileRequest(name="Ada"))
        with pytest.raises(ForbiddenError):
            await user_service.toggle_subscription(CREATOR, CREATOR)

    async def test_subscribe_to_missing_channel(self, user_service):
        with pytest.raises(UserNotFoundError):
            await user_service.toggle_subscription("nonexistent", VIEWER)


class TestRemoveUser:
    async def test_removes_everything_the_account_owns(
        self, db, user_service, tree_service, history_service, node_store,
    ):
        await user_service.save_profile(CREATOR, SaveProfileRequest(name="Ada"))
        await user_service.save_profile(VIEWER, SaveProfileRequest(name="Bo"))
        mine = await create_complete_tree(tree_service)
        theirs = await create_complete_tree(tree_service, creator=VIEWER)

        await tree_service.update_favorites(theirs.tree_id, CREATOR)
        await tree_service.update_favorites(mine.tree_id, VIEWER)
        await history_service.upsert_progress(CREATOR, UpsertHistoryRequest(
            tree_id=theirs.tree_id, active_node_id=theirs.root.node_id,
            progress=1, total_progress=1,
        ))
        await user_service.toggle_subscription(VIEWER, CREATOR)

        await user_service.remove_user(CREATOR)

        with pytest.raises(TreeNotFoundError):
            await tree_service.find_one(mine.tree_id)
        assert await node_store.get_nodes(mine.tree_id) == []
        assert await db.fetchall(
            "SELECT * FROM histories WHERE user_id = ?", (CREATOR,),
        ) == []
        assert await db.fetchall(
            "SELECT * FROM tree_favorites WHERE user_id = ?", (CREATOR,),
        ) == []
        with pytest.raises(UserNotFoundError):
            await user_service.get_channel(CREATOR)

        channel = await user_service.get_channel(VIEWER)
        assert channel.subscribers == 0
        survivor = await tree_service.find_one(theirs.tree_id)
        assert survivor.data.favorites == []
