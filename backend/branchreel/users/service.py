"""User service: profiles, channel subscriptions, and account removal."""

import logging
from datetime import UTC, datetime

from branchreel.db.connection import Database
from branchreel.errors import ForbiddenError, UserNotFoundError
from branchreel.history.service import HistoryService
from branchreel.trees.service import TreeService
from branchreel.users.schemas import ChannelResponse, SaveProfileRequest, UserResponse

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        db: Database,
        trees: TreeService | None = None,
        histories: HistoryService | None = None,
    ) -> None:
        self._db = db
        self._trees = trees or TreeService(db)
        self._histories = histories or HistoryService(db)

    async def save_profile(self, user_id: str, request: SaveProfileRequest) -> UserResponse:
        """Create or refresh the profile for an identity."""
        now = datetime.now(UTC).isoformat()
        await self._db.execute(
            """
            INSERT INTO users (user_id, name, email, picture, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                name = excluded.name,
                email = excluded.email,
                picture = excluded.picture,
                updated_at = excluded.updated_at
            """,
            (user_id, request.name, request.email, request.picture, now, now),
        )
        row = await self._db.fetchone("SELECT * FROM users WHERE user_id = ?", (user_id,))
        assert row is not None
        return UserResponse(**dict(row))

    async def get_channel(
        self, channel_id: str, viewer_id: str | None = None,
    ) -> ChannelResponse:
        row = await self._db.fetchone(
            """
            SELECT u.user_id, u.name, u.picture,
                   (SELECT COUNT(*) FROM subscriptions s
                    WHERE s.channel_id = u.user_id) AS subscribers,
                   EXISTS (SELECT 1 FROM subscriptions s
                           WHERE s.channel_id = u.user_id
                             AND s.subscriber_id = ?) AS is_subscribed
            FROM users u
            WHERE u.user_id = ?
            """,
            (viewer_id, channel_id),
        )
        if row is None:
            raise UserNotFoundError(channel_id)
        return ChannelResponse(
            channel_id=row["user_id"],
            name=row["name"],
            picture=row["picture"],
            subscribers=row["subscribers"],
            is_subscribed=bool(row["is_subscribed"]),
        )

    async def toggle_subscription(
        self, channel_id: str, subscriber_id: str,
    ) -> ChannelResponse:
        """Subscribe to a channel, or unsubscribe when already subscribed."""
        if channel_id == subscriber_id:
            raise ForbiddenError("Cannot subscribe to your own channel")

        async with self._db.transaction() as tx:
            channel = await tx.fetchone(
                "SELECT user_id FROM users WHERE user_id = ?", (channel_id,),
            )
            if channel is None:
                raise UserNotFoundError(channel_id)
            cursor = await tx.execute(
                "DELETE FROM subscriptions WHERE channel_id = ? AND subscriber_id = ?",
                (channel_id, subscriber_id),
            )
            if cursor.rowcount == 0:
                await tx.execute(
                    """
                    INSERT INTO subscriptions (channel_id, subscriber_id, created_at)
                    VALUES (?, ?, ?)
                    """,
                    (channel_id, subscriber_id, datetime.now(UTC).isoformat()),
                )

        return await self.get_channel(channel_id, subscriber_id)

    async def remove_user(self, user_id: str) -> None:
        """Delete an account and everything it owns."""
        tree_count = await self._trees.delete_by_creator(user_id)
        history_count = await self._histories.delete_by_user(user_id)

        async with self._db.transaction() as tx:
            await tx.execute("DELETE FROM tree_favorites WHERE user_id = ?", (user_id,))
            await tx.execute(
                "DELETE FROM subscriptions WHERE channel_id = ? OR subscriber_id = ?",
                (user_id, user_id),
            )
            await tx.execute("DELETE FROM users WHERE user_id = ?", (user_id,))

        logger.info(
            "Removed account %s: %d trees, %d histories", user_id, tree_count, history_count,
        )
