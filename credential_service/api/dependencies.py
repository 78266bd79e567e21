"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.core.account_lifecycle import AccountLifecycle
from credential_service.core.logging import set_account_context
from credential_service.core.token_service import TokenService
from credential_service.core.user_store import SQLAlchemyUserStore
from credential_service.database import get_db


def get_token_service(request: Request) -> TokenService:
    """Token service built once at startup (see ``main.lifespan``)."""
    return request.app.state.tokens


def get_account_lifecycle(
    db: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> AccountLifecycle:
    return AccountLifecycle(store=SQLAlchemyUserStore(db), tokens=tokens)


async def get_current_account_id(
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Id of the caller, from an ``Authorization: Bearer <token>`` header.

    Raises AuthenticationFailure (401) for a missing, malformed, invalid or
    expired token, or a token whose account is no longer active.
    """
    account_id = await lifecycle.authenticate(authorization)
    set_account_context(account_id)
    return account_id


async def require_admin(
    account_id: Annotated[str, Depends(get_current_account_id)],
    lifecycle: Annotated[AccountLifecycle, Depends(get_account_lifecycle)],
) -> str:
    """Require the caller to be an admin."""
    if not await lifecycle.is_admin(account_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return account_id
