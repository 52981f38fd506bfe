from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.schemas.auth import CurrentUserResponse
from app.core.schemas.auth import AuthContext  # noqa: TCH001
from app.dependencies import get_current_user

router = APIRouter(
    responses={
        401: {"description": "Unauthorized"},
        503: {"description": "Identity provider unavailable"},
    }
)


@router.get("/me", response_model=CurrentUserResponse)
async def read_current_user(current_user: AuthContext = Depends(get_current_user)):
    """Return the caller's identity and profile role, creating the profile on first use."""
    return CurrentUserResponse(
        subject_id=current_user.subject_id,
        email=current_user.email,
        full_name=current_user.full_name,
        role=current_user.role,
    )
