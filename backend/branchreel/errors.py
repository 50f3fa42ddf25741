"""Service-level error kinds. Routers translate these into HTTP responses."""


class TreeNotFoundError(Exception):
    def __init__(self, tree_id: str) -> None:
        self.tree_id = tree_id
        super().__init__(f"Video not found: {tree_id}")


class NodeNotFoundError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class HistoryNotFoundError(Exception):
    def __init__(self, user_id: str, tree_id: str) -> None:
        self.user_id = user_id
        self.tree_id = tree_id
        super().__init__(f"History not found for video: {tree_id}")


class UserNotFoundError(Exception):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ForbiddenError(Exception):
    """The acting identity may not touch or see this resource."""

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message)


class TreeCorruptedError(Exception):
    """Stored nodes of a tree no longer form a valid tree."""

    def __init__(self, tree_id: str, node_ids: list[str]) -> None:
        self.tree_id = tree_id
        self.node_ids = node_ids
        super().__init__(f"Video tree is corrupted: {tree_id}")
