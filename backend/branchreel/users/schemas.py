"""Request and response schemas for user profiles and channels."""

from pydantic import BaseModel, Field

# -- Requests --


class SaveProfileRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str | None = None
    picture: str | None = None


# -- Responses --


class UserResponse(BaseModel):
    user_id: str
    name: str
    email: str | None = None
    picture: str | None = None
    created_at: str
    updated_at: str


class ChannelResponse(BaseModel):
    """Public view of a creator: display identity plus subscriber count."""

    channel_id: str
    name: str | None = None
    picture: str | None = None
    subscribers: int = 0
    is_subscribed: bool = False
