"""Registration and login routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from credential_service.api.dependencies import get_account_lifecycle
from credential_service.core.account_lifecycle import AccountLifecycle

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    """Registration request schema."""
    email: EmailStr
    password: str = Field(..., min_length=1, description="At least 8 characters")
    firstname: str = Field(..., min_length=1)
    lastname: str = Field(..., min_length=1)
    has_accepted_terms_and_conditions: bool


class LoginRequest(BaseModel):
    """Login request schema."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Bearer token response schema."""
    access_token: str = Field(..., description="Compact JWE; send as 'Authorization: Bearer <token>'")
    token_type: str = "bearer"


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """Create an account and return a token for it.

    - 422 if the password is shorter than 8 characters
    - 409 if the email is taken or the terms were not accepted
    """
    account_id = await lifecycle.register(
        email=data.email,
        password=data.password,
        firstname=data.firstname,
        lastname=data.lastname,
        has_accepted_terms_and_conditions=data.has_accepted_terms_and_conditions,
    )
    return TokenResponse(access_token=lifecycle.issue_token(account_id))


@router.post("/login", response_model=TokenResponse)
async def login(
    data: LoginRequest,
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
):
    """Exchange credentials for a token. Any mismatch is a generic 401."""
    account_id = await lifecycle.login(data.email, data.password)
    return TokenResponse(access_token=lifecycle.issue_token(account_id))
