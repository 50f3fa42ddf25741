"""FastAPI routes for profiles and channel subscriptions."""

from fastapi import APIRouter, Depends, HTTPException, status

from branchreel.auth import get_current_user_id, get_optional_user_id
from branchreel.errors import ForbiddenError, UserNotFoundError
from branchreel.users.schemas import ChannelResponse, SaveProfileRequest, UserResponse
from branchreel.users.service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


def get_user_service() -> UserService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("UserService not initialized")


@router.put("/me")
async def save_profile(
    request: SaveProfileRequest,
    user_id: str = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    return await service.save_profile(user_id, request)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def remove_account(
    user_id: str = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
) -> None:
    """Delete the caller's account with all of their videos and history."""
    await service.remove_user(user_id)


@router.get("/{channel_id}")
async def get_channel(
    channel_id: str,
    user_id: str | None = Depends(get_optional_user_id),
    service: UserService = Depends(get_user_service),
) -> ChannelResponse:
    try:
        return await service.get_channel(channel_id, user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail=f"User not found: {channel_id}")


@router.patch("/{channel_id}/subscribers")
async def toggle_subscription(
    channel_id: str,
    user_id: str = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
) -> ChannelResponse:
    try:
        return await service.toggle_subscription(channel_id, user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail=f"User not found: {channel_id}")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
