"""Shared test helpers: node builders and ready-made video trees."""

from typing import Any

from httpx import AsyncClient

from branchreel.models import NodeInfo, VideoNode
from branchreel.trees.schemas import (
    SubmittedNode,
    SubmittedTreeInfo,
    TreeDetailResponse,
    UpdateTreeRequest,
)
from branchreel.trees.service import TreeService

CREATOR = "creator-1"
VIEWER = "viewer-1"


def make_info(name: str = "Clip", **overrides: Any) -> NodeInfo:
    """A fully populated NodeInfo."""
    fields: dict[str, Any] = {
        "name": name,
        "label": f"Go to {name}",
        "url": f"https://blobs.example.com/{name}.mp4",
        "duration": 30.0,
        "selection_time_start": 20.0,
        "selection_time_end": 30.0,
    }
    fields.update(overrides)
    return NodeInfo(**fields)


def make_node(
    node_id: str,
    parent_id: str | None = None,
    layer: int = 0,
    creator: str = CREATOR,
    info: NodeInfo | None = None,
) -> VideoNode:
    return VideoNode(
        node_id=node_id,
        tree_id="tree-1",
        parent_id=parent_id,
        layer=layer,
        info=info,
        creator=creator,
    )


def branching_nodes() -> list[VideoNode]:
    """root -> A -> (B, C), flat and unordered by depth."""
    return [
        make_node("B", parent_id="A", layer=2),
        make_node("root"),
        make_node("C", parent_id="A", layer=2),
        make_node("A", parent_id="root", layer=1),
    ]


def branching_submission(root_id: str, *, with_info: bool = True) -> SubmittedNode:
    """Nested edit: root with two children, the first of which has a child."""

    def info(name: str) -> NodeInfo | None:
        return make_info(name) if with_info else None

    return SubmittedNode(
        node_id=root_id,
        info=info("intro"),
        children=[
            SubmittedNode(
                info=info("left"),
                children=[SubmittedNode(info=info("left-end"))],
            ),
            SubmittedNode(info=info("right")),
        ],
    )


def update_request(
    root: SubmittedNode,
    creator: str = CREATOR,
    title: str | None = "A branching story",
    description: str | None = "Pick a path",
    status: str = "public",
) -> UpdateTreeRequest:
    return UpdateTreeRequest(
        root=root,
        info=SubmittedTreeInfo(
            title=title, description=description, creator=creator, status=status,
        ),
    )


async def create_complete_tree(
    service: TreeService,
    creator: str = CREATOR,
    title: str = "A branching story",
    description: str | None = "Pick a path",
    status: str = "public",
) -> TreeDetailResponse:
    """Create a tree and fill it so that it is no longer editing.

    Shape: root -> (left -> left-end, right).
    """
    tree = await service.create(creator)
    request = update_request(
        branching_submission(tree.root.node_id),
        creator=creator,
        title=title,
        description=description,
        status=status,
    )
    return await service.update(tree.tree_id, request, creator)


# -- API-level helpers --


def auth(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


async def create_video(client: AsyncClient, user_id: str = CREATOR) -> dict:
    """Create a tree via the API and return the response JSON."""
    resp = await client.post("/api/videos", headers=auth(user_id))
    assert resp.status_code == 201
    return resp.json()


async def publish_video(
    client: AsyncClient,
    user_id: str = CREATOR,
    title: str = "A branching story",
) -> dict:
    """Create a tree via the API, fill in every node, and return the result."""
    video = await create_video(client, user_id)
    body = update_request(
        branching_submission(video["root"]["node_id"]), creator=user_id, title=title,
    ).model_dump(mode="json")
    resp = await client.patch(
        f"/api/videos/{video['tree_id']}", json=body, headers=auth(user_id),
    )
    assert resp.status_code == 200
    return resp.json()
