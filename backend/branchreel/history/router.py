"""FastAPI routes for a viewer's watch history."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from branchreel.auth import get_current_user_id
from branchreel.errors import HistoryNotFoundError, NodeNotFoundError, TreeNotFoundError
from branchreel.history.schemas import HistoryResponse, UpsertHistoryRequest
from branchreel.history.service import HistoryService
from branchreel.trees.schemas import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TreeListResponse

router = APIRouter(prefix="/api/histories", tags=["histories"])


def get_history_service() -> HistoryService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("HistoryService not initialized")


@router.get("")
async def list_histories(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="max"),
    user_id: str = Depends(get_current_user_id),
    service: HistoryService = Depends(get_history_service),
) -> TreeListResponse:
    """Videos the caller has started watching, most recent first."""
    return await service.find_by_viewer(user_id, page, page_size)


@router.get("/{tree_id}")
async def get_history(
    tree_id: str,
    user_id: str = Depends(get_current_user_id),
    service: HistoryService = Depends(get_history_service),
) -> HistoryResponse:
    try:
        return await service.find_by_viewer_and_tree(user_id, tree_id)
    except HistoryNotFoundError:
        raise HTTPException(status_code=404, detail=f"History not found for video: {tree_id}")


@router.put("")
async def save_history(
    request: UpsertHistoryRequest,
    user_id: str = Depends(get_current_user_id),
    service: HistoryService = Depends(get_history_service),
) -> HistoryResponse:
    try:
        return await service.upsert_progress(user_id, request)
    except TreeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {request.tree_id}")
    except NodeNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Node not found: {request.active_node_id}",
        )


@router.delete("/{tree_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_history(
    tree_id: str,
    user_id: str = Depends(get_current_user_id),
    service: HistoryService = Depends(get_history_service),
) -> None:
    try:
        await service.remove(user_id, tree_id)
    except HistoryNotFoundError:
        raise HTTPException(status_code=404, detail=f"History not found for video: {tree_id}")
