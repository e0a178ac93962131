"""Authentication endpoints."""

from fastapi import APIRouter, Depends

from marketing_backend.core.auth import TokenData, create_access_token, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token/{user_id}")
async def get_token(user_id: int) -> dict[str, str]:
    """Create a test token for a dashboard user.

    WARNING: This endpoint is for testing only and should not be used in production.
    In production, tokens are issued by the dashboard's own login flow.
    """
    token = create_access_token(user_id)
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me")
async def get_current_user_info(
    user: TokenData = Depends(get_current_user),
) -> dict[str, str]:
    """Test endpoint that requires JWT authentication."""
    return {"user_id": str(user.user_id), "token_expires": str(user.exp)}
