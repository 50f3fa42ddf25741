"""FastAPI routes for video trees: authoring, client reads, favorites, views."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from branchreel.auth import get_current_user_id, get_optional_user_id
from branchreel.errors import (
    ForbiddenError,
    NodeNotFoundError,
    TreeCorruptedError,
    TreeNotFoundError,
)
from branchreel.trees.builder import InvalidTreeSubmissionError, TreeStructureError
from branchreel.trees.schemas import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    FavoriteToggleResponse,
    TreeClientResponse,
    TreeDetailResponse,
    TreeListResponse,
    UpdateTreeRequest,
    ViewCountResponse,
)
from branchreel.trees.service import TreeService

router = APIRouter(prefix="/api/videos", tags=["videos"])


def get_tree_service() -> TreeService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("TreeService not initialized")


def _corrupted(e: TreeCorruptedError) -> HTTPException:
    return HTTPException(status_code=500, detail=f"Video tree is corrupted: {e.tree_id}")


# -- Authoring --


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tree(
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeDetailResponse:
    return await service.create(user_id)


@router.get("/user")
async def list_own_trees(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="max"),
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeListResponse:
    """Every tree the caller created, drafts and private ones included."""
    return await service.find_by_creator(user_id, page, page_size)


@router.get("/user/{tree_id}")
async def get_own_tree(
    tree_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeDetailResponse:
    """Full tree for the creator's editor."""
    try:
        return await service.find_one_by_creator(tree_id, user_id)
    except TreeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {tree_id}")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except TreeCorruptedError as e:
        raise _corrupted(e)


@router.patch("/{tree_id}")
async def update_tree(
    tree_id: str,
    request: UpdateTreeRequest,
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeDetailResponse:
    try:
        return await service.update(tree_id, request, user_id)
    except TreeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {tree_id}")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except (InvalidTreeSubmissionError, TreeStructureError) as e:
        raise HTTPException(
            status_code=422, detail={"message": str(e), "node_ids": e.node_ids},
        )
    except TreeCorruptedError as e:
        raise _corrupted(e)


@router.delete("/{tree_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_tree(
    tree_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> None:
    try:
        await service.remove(tree_id, user_id)
    except (TreeNotFoundError, NodeNotFoundError):
        raise HTTPException(status_code=404, detail=f"Video not found: {tree_id}")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))


# -- Client reads --


@router.get("")
async def list_featured(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="max"),
    user_id: str | None = Depends(get_optional_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeListResponse:
    return await service.find_client_featured(page, page_size, user_id)


@router.get("/search")
async def search_trees(
    keyword: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="max"),
    user_id: str | None = Depends(get_optional_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeListResponse:
    """Full-text search over titles and descriptions."""
    return await service.find_client_by_keyword(keyword, page, page_size, user_id)


@router.get("/channel/{channel_id}")
async def list_channel(
    channel_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="max"),
    user_id: str | None = Depends(get_optional_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeListResponse:
    return await service.find_client_by_channel(channel_id, page, page_size, user_id)


@router.get("/favorites")
async def list_favorites(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="max"),
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeListResponse:
    return await service.find_client_by_favorites(user_id, page, page_size)


@router.get("/batch")
async def list_by_ids(
    ids: str = Query(..., min_length=1),
    user_id: str | None = Depends(get_optional_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeListResponse:
    """Look up several trees at once. ``ids`` is comma separated."""
    tree_ids = [v.strip() for v in ids.split(",") if v.strip()]
    return await service.find_client_by_ids(tree_ids, user_id)


@router.get("/{tree_id}")
async def get_tree(
    tree_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    service: TreeService = Depends(get_tree_service),
) -> TreeClientResponse:
    try:
        return await service.find_client_one(tree_id, user_id)
    except TreeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {tree_id}")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except TreeCorruptedError as e:
        raise _corrupted(e)


# -- Counters --


@router.patch("/{tree_id}/favorites")
async def toggle_favorite(
    tree_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TreeService = Depends(get_tree_service),
) -> FavoriteToggleResponse:
    try:
        return await service.update_favorites(tree_id, user_id)
    except TreeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {tree_id}")


@router.patch("/{tree_id}/views")
async def add_view(
    tree_id: str,
    service: TreeService = Depends(get_tree_service),
) -> ViewCountResponse:
    try:
        views = await service.increment_views(tree_id)
    except TreeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {tree_id}")
    return ViewCountResponse(tree_id=tree_id, views=views)
