"""Canonical data structures for BranchReel.

Defined once here, referenced everywhere else. Nodes are persisted flat
(VideoNode) and handed to clients nested (TreeNode); the tree builder in
branchreel.trees.builder converts between the two.
"""

from typing import Literal

from pydantic import BaseModel, Field

TreeStatus = Literal["draft", "public", "private"]

# ---------------------------------------------------------------------------
# Node payload
# ---------------------------------------------------------------------------


class NodeInfo(BaseModel):
    """Content of one branch segment. ``url`` is the blob storage reference."""

    name: str | None = None
    label: str | None = None  # choice text shown to the viewer
    url: str | None = None
    duration: float | None = Field(default=None, ge=0)
    selection_time_start: float | None = Field(default=None, ge=0)
    selection_time_end: float | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Flat and nested node forms
# ---------------------------------------------------------------------------


class VideoNode(BaseModel):
    """One persisted node record. Children are implied by parent_id."""

    node_id: str
    tree_id: str | None = None
    parent_id: str | None = None
    layer: int = Field(ge=0)
    info: NodeInfo | None = None
    creator: str


class TreeNode(BaseModel):
    """A node with its children attached, as produced by build_tree()."""

    node_id: str
    parent_id: str | None = None
    layer: int
    info: NodeInfo | None = None
    creator: str
    children: list["TreeNode"] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Tree blocks
# ---------------------------------------------------------------------------


class TreeInfo(BaseModel):
    title: str | None = None
    description: str | None = None
    creator: str
    status: TreeStatus = "public"
    is_editing: bool = True


class TreeData(BaseModel):
    views: int = Field(default=0, ge=0)
    favorites: list[str] = Field(default_factory=list)
