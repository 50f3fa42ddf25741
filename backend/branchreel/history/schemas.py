"""Request and response schemas for watch history."""

from pydantic import BaseModel, Field

# -- Requests --


class UpsertHistoryRequest(BaseModel):
    tree_id: str
    active_node_id: str
    progress: float = Field(ge=0)
    total_progress: float = Field(ge=0)
    is_ended: bool = False


# -- Responses --


class HistoryResponse(BaseModel):
    history_id: str
    user_id: str
    tree_id: str
    active_node_id: str
    progress: float
    total_progress: float
    is_ended: bool
    created_at: str
    updated_at: str
