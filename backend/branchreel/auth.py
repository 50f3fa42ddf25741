"""Request identity. The caller's id arrives in the X-User-Id header."""

from fastapi import Header, HTTPException


async def get_current_user_id(
    x_user_id: str | None = Header(default=None),
) -> str:
    """Identity for routes that require one. Missing header gives 401."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


async def get_optional_user_id(
    x_user_id: str | None = Header(default=None),
) -> str | None:
    return x_user_id or None
