"""Request and response schemas for video tree endpoints."""

from pydantic import BaseModel, Field

from branchreel.history.schemas import HistoryResponse
from branchreel.models import NodeInfo, TreeData, TreeInfo, TreeNode, TreeStatus

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100

# -- Requests --


class SubmittedNode(BaseModel):
    """A node in an edited tree. New nodes may leave node_id empty."""

    node_id: str | None = None
    parent_id: str | None = None
    layer: int | None = Field(default=None, ge=0)
    info: NodeInfo | None = None
    children: list["SubmittedNode"] = Field(default_factory=list)


class SubmittedTreeInfo(BaseModel):
    """Editable tree info. ``is_editing`` is derived server-side and not accepted."""

    title: str | None = None
    description: str | None = None
    creator: str
    status: TreeStatus = "public"


class UpdateTreeRequest(BaseModel):
    root: SubmittedNode
    info: SubmittedTreeInfo


# -- Responses --


class CreatorResponse(BaseModel):
    user_id: str
    name: str | None = None
    picture: str | None = None
    subscribers: int = 0


class TreeDetailResponse(BaseModel):
    tree_id: str
    root: TreeNode
    info: TreeInfo
    data: TreeData
    created_at: str
    updated_at: str


class TreeClientResponse(TreeDetailResponse):
    creator_info: CreatorResponse | None = None
    is_favorited: bool = False
    history: HistoryResponse | None = None


class TreeListItem(BaseModel):
    """A tree in a list view: root node only, no descendants."""

    tree_id: str
    root: TreeNode | None = None
    info: TreeInfo
    data: TreeData
    created_at: str
    updated_at: str
    creator_info: CreatorResponse | None = None
    is_favorited: bool = False
    history: HistoryResponse | None = None


class TreeListResponse(BaseModel):
    videos: list[TreeListItem]
    count: int


class FavoriteToggleResponse(BaseModel):
    tree_id: str
    is_favorited: bool
    favorites: list[str]


class ViewCountResponse(BaseModel):
    tree_id: str
    views: int
