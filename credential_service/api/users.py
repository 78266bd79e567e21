"""User profile routes."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, EmailStr, Field

from credential_service.api.dependencies import (
    get_account_lifecycle,
    get_current_account_id,
    require_admin,
)
from credential_service.core.account_lifecycle import AccountLifecycle

router = APIRouter(prefix="/users", tags=["users"])


class UserSummary(BaseModel):
    id: str
    firstname: str
    lastname: str


class PublicProfile(BaseModel):
    """GDPR-reduced profile, visible to any authenticated caller."""
    firstname: str
    lastname: str
    created_at: datetime


class FullProfile(PublicProfile):
    """Profile visible to its owner."""
    email: str
    last_connection: datetime | None = None


class UpdatedProfile(BaseModel):
    email: str
    firstname: str
    lastname: str
    updated_at: datetime


class UserListResponse(BaseModel):
    users: list[UserSummary]


class PublicProfileResponse(BaseModel):
    user: PublicProfile


class FullProfileResponse(BaseModel):
    user: FullProfile


class UpdatedProfileResponse(BaseModel):
    user: UpdatedProfile


class UpdateRequest(BaseModel):
    """Profile update request schema.

    ``current_password`` confirms the request; omitted fields are unchanged.
    """
    current_password: str = Field(..., min_length=1)
    email: EmailStr | None = None
    new_password: str | None = Field(default=None, min_length=1)
    firstname: str | None = Field(default=None, min_length=1)
    lastname: str | None = Field(default=None, min_length=1)


@router.get("", response_model=UserListResponse)
async def list_users(
    account_id: Annotated[str, Depends(get_current_account_id)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """List active accounts."""
    return {"users": await lifecycle.list_accounts()}


@router.get("/me", response_model=FullProfileResponse)
async def me(
    account_id: Annotated[str, Depends(get_current_account_id)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """Full profile of the caller."""
    return {"user": await lifecycle.me(account_id)}


@router.patch("/me", response_model=UpdatedProfileResponse)
async def update_me(
    data: UpdateRequest,
    account_id: Annotated[str, Depends(get_current_account_id)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """Update the caller's profile (requires the current password)."""
    user = await lifecycle.update(
        account_id,
        current_password=data.current_password,
        email=data.email,
        new_password=data.new_password,
        firstname=data.firstname,
        lastname=data.lastname,
    )
    return {"user": user}


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    account_id: Annotated[str, Depends(get_current_account_id)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
    hard_delete: bool = False,
):
    """Soft-delete the caller's account, or erase it with ``hard_delete=true``."""
    await lifecycle.delete(account_id, hard_delete=hard_delete)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}", response_model=PublicProfileResponse)
async def get_user(
    user_id: str,
    account_id: Annotated[str, Depends(get_current_account_id)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """GDPR-reduced profile of an active account."""
    return {"user": await lifecycle.get_profile(user_id)}


@router.post("/{user_id}/restore", status_code=status.HTTP_204_NO_CONTENT)
async def restore_user(
    user_id: str,
    admin_id: Annotated[str, Depends(require_admin)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """Restore a soft-deleted account (admin only)."""
    await lifecycle.restore(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
